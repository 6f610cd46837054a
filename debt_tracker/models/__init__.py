"""SQLAlchemy models package."""

from debt_tracker.models.debt import Debt, DebtPayment, DebtPriority, DebtStatus
from debt_tracker.models.matching import (
    CreditorMatchingRule,
    DebtTransactionMatch,
    MatchStatus,
    MatchType,
    RuleField,
    RuleType,
)
from debt_tracker.models.payment_history import DebtPaymentHistory, PaymentType
from debt_tracker.models.transaction import Transaction

__all__ = [
    "CreditorMatchingRule",
    "Debt",
    "DebtPayment",
    "DebtPaymentHistory",
    "DebtPriority",
    "DebtStatus",
    "DebtTransactionMatch",
    "MatchStatus",
    "MatchType",
    "PaymentType",
    "RuleField",
    "RuleType",
    "Transaction",
]
