"""Append-only payment history derived from confirmed matches."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from debt_tracker.database import Base
from debt_tracker.models.base import UUIDMixin


class PaymentType(str, Enum):
    """Classification of a payment relative to the debt's minimum payment."""

    REGULAR = "regular"
    EXTRA = "extra"
    MINIMUM = "minimum"
    FINAL = "final"


class DebtPaymentHistory(UUIDMixin, Base):
    """Immutable record of one confirmed payment toward a debt."""

    __tablename__ = "debt_payment_history"
    __table_args__ = (
        UniqueConstraint("debt_id", "transaction_id", name="uq_debt_payment_history_debt_txn"),
    )

    debt_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("debts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_id: Mapped[str] = mapped_column(String(64), ForeignKey("transactions.id"), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    payment_type: Mapped[PaymentType] = mapped_column(
        SQLEnum(PaymentType, name="payment_type_enum"),
        default=PaymentType.REGULAR,
    )
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
