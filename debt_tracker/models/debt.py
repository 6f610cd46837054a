"""Debt and manual debt payment models."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from debt_tracker.database import Base
from debt_tracker.models.base import TimestampMixin, UUIDMixin


class DebtStatus(str, Enum):
    """Debt lifecycle status."""

    ACTIVE = "active"
    PAID_OFF = "paid_off"


class DebtPriority(str, Enum):
    """User-assigned repayment priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Debt(UUIDMixin, TimestampMixin, Base):
    """A tracked debt.

    ``current_balance`` is a cache of the canonical balance derived from payment
    history; it may drift and is repaired by balance sync or the next payment.
    """

    __tablename__ = "debts"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    creditor: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    original_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    interest_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    minimum_payment: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    status: Mapped[DebtStatus] = mapped_column(
        SQLEnum(DebtStatus, name="debt_status_enum"),
        default=DebtStatus.ACTIVE,
        index=True,
    )
    priority: Mapped[DebtPriority] = mapped_column(
        SQLEnum(DebtPriority, name="debt_priority_enum"),
        default=DebtPriority.MEDIUM,
    )


class DebtPayment(UUIDMixin, Base):
    """Payment entered by hand, without transaction provenance."""

    __tablename__ = "debt_payments"

    debt_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("debts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    principal: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    interest: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
