"""Pydantic schemas for debts, manual payments and balances."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

from debt_tracker.models import DebtPriority, DebtStatus, PaymentType
from debt_tracker.schemas.base import BaseResponse, ListResponse


class DebtCreate(BaseModel):
    """Request body to create a debt."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    creditor: str = Field(default="", max_length=255)
    original_amount: Decimal = Field(..., ge=0)
    current_balance: Decimal | None = Field(default=None, ge=0)
    interest_rate: Decimal | None = Field(default=None, ge=0)
    minimum_payment: Decimal | None = Field(default=None, ge=0)
    priority: DebtPriority = DebtPriority.MEDIUM


class DebtResponse(BaseResponse):
    id: UUID
    name: str
    description: str | None
    creditor: str
    original_amount: Decimal
    current_balance: Decimal
    interest_rate: Decimal | None
    minimum_payment: Decimal | None
    status: DebtStatus
    priority: DebtPriority
    created_at: datetime
    updated_at: datetime


DebtListResponse = ListResponse[DebtResponse]


class ManualPaymentCreate(BaseModel):
    """A payment the user records by hand.

    ``principal`` defaults to ``amount - interest``.
    """

    amount: Decimal = Field(..., gt=0)
    principal: Decimal | None = Field(default=None, ge=0)
    interest: Decimal = Field(default=Decimal("0"), ge=0)
    payment_date: datetime | None = None
    notes: str | None = None


class ManualPaymentResponse(BaseResponse):
    id: UUID
    debt_id: UUID
    amount: Decimal
    principal: Decimal
    interest: Decimal
    payment_date: datetime
    notes: str | None


class PaymentHistoryResponse(BaseResponse):
    id: UUID
    debt_id: UUID
    transaction_id: str
    payment_date: datetime
    amount: Decimal
    balance_after: Decimal
    payment_type: PaymentType
    is_automatic: bool


PaymentHistoryListResponse = ListResponse[PaymentHistoryResponse]


class DebtBalanceResponse(BaseResponse):
    """Canonical balance next to the stored one."""

    debt_id: UUID
    original_amount: Decimal
    current_balance: Decimal
    stored_balance: Decimal | None = None
    total_paid: Decimal
    progress_percentage: float
    automatic_payments: Decimal
    manual_payments: Decimal
    payment_count: int
    last_payment_date: datetime | None
    is_fully_paid: bool
    needs_sync: bool = False


class DebtSummaryResponse(BaseResponse):
    total_debts: int
    active_debts: int
    paid_off_debts: int
    total_original: Decimal
    total_current: Decimal
    total_paid: Decimal
    overall_progress: float
    balances: list[DebtBalanceResponse]


class PaymentVelocityResponse(BaseResponse):
    debt_id: UUID
    average_monthly_payment: Decimal
    payment_frequency: float
    # Serialized as null when no payments have been made
    estimated_payoff_months: float | None
    months_observed: float

    @field_serializer("estimated_payoff_months")
    def _finite_or_none(self, value: float | None) -> float | None:
        if value is None or value == float("inf"):
            return None
        return value


class SyncBalancesResponse(BaseResponse):
    updated: int
    unchanged: int
    updated_debt_ids: list[UUID]
