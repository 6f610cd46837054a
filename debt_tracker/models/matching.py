"""Creditor matching rules and debt/transaction match records."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from debt_tracker.database import Base
from debt_tracker.models.base import TimestampMixin, UUIDMixin


class RuleType(str, Enum):
    """How a rule compares its value against a transaction field."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    PATTERN = "pattern"
    ACCOUNT = "account"


class RuleField(str, Enum):
    """Transaction field a rule reads."""

    MERCHANT_NAME = "merchant_name"
    COUNTERPARTY_NAME = "counterparty_name"
    DESCRIPTION = "description"
    ACCOUNT_NUMBER = "account_number"


class MatchStatus(str, Enum):
    """Review state of a debt/transaction match."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class MatchType(str, Enum):
    """Whether a match came from rule evaluation or a user pairing."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


class CreditorMatchingRule(UUIDMixin, TimestampMixin, Base):
    """Rule tying transactions to a debt."""

    __tablename__ = "creditor_matching_rules"

    debt_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("debts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[RuleType] = mapped_column(SQLEnum(RuleType, name="rule_type_enum"), nullable=False)
    field: Mapped[RuleField] = mapped_column(SQLEnum(RuleField, name="rule_field_enum"), nullable=False)
    # Literal for exact/fuzzy/account rules, regex source for pattern rules
    value: Mapped[str] = mapped_column(Text, nullable=False)
    confidence_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=85)  # 0-100
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class DebtTransactionMatch(UUIDMixin, TimestampMixin, Base):
    """Decision that a transaction is (or might be) a payment toward a debt.

    Matches are never deleted; review only moves them out of ``pending``.
    """

    __tablename__ = "debt_transaction_matches"
    __table_args__ = (
        UniqueConstraint("transaction_id", "debt_id", name="uq_debt_transaction_matches_txn_debt"),
        Index("idx_debt_transaction_matches_debt_status", "debt_id", "match_status"),
    )

    transaction_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("transactions.id"), nullable=False, index=True
    )
    debt_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("debts.id", ondelete="CASCADE"), nullable=False
    )
    # Manual matches have no rule; deleting a rule keeps its historic matches
    rule_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("creditor_matching_rules.id", ondelete="SET NULL"), nullable=True
    )
    match_confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0-100
    match_status: Mapped[MatchStatus] = mapped_column(
        SQLEnum(MatchStatus, name="match_status_enum"),
        default=MatchStatus.PENDING,
    )
    match_type: Mapped[MatchType] = mapped_column(
        SQLEnum(MatchType, name="match_type_enum"),
        default=MatchType.AUTOMATIC,
    )
    matched_field: Mapped[str | None] = mapped_column(String(32), nullable=True)
    matched_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
