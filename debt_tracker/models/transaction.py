"""Imported bank transactions.

Transactions come from the bank feed and are read-only to the matching engine.
Amounts are signed minor units: negative values are outgoing payments.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from debt_tracker.database import Base


class Transaction(Base):
    """Bank transaction as delivered by the account provider."""

    __tablename__ = "transactions"
    __table_args__ = (Index("idx_transactions_created", "created"),)

    # Provider identifiers are opaque strings (e.g. "tx_0000A1b2C3")
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="GBP")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    merchant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    counterparty_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    counterparty_preferred_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    include_in_spending: Mapped[bool] = mapped_column(Boolean, default=True)

    @property
    def is_outgoing(self) -> bool:
        return self.amount < 0
