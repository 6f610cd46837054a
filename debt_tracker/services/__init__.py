"""Services package."""

from debt_tracker.services.balance_reconciliation import (
    DebtBalanceInfo,
    DebtSummary,
    PaymentVelocity,
    PotentialPayment,
    SyncResult,
    calculate_debt_balance,
    calculate_debt_summary,
    calculate_multiple_debt_balances,
    calculate_payment_velocity,
    find_potential_payments,
    get_debt_balance,
    get_debt_summary,
    get_payment_velocity,
    get_potential_payments,
    should_update_debt_balance,
    sync_debt_balances,
)
from debt_tracker.services.errors import DuplicateMatchError, NotFoundError, RuleValidationError
from debt_tracker.services.ingestion import DebtMatchingScheduler, ScanSummary
from debt_tracker.services.match_generator import (
    MatchCandidate,
    build_default_rules,
    find_matches,
    validate_rule,
)
from debt_tracker.services.match_lifecycle import (
    RecordOutcome,
    ReviewResult,
    confirm_match,
    create_manual_match,
    get_pending_matches,
    record_candidate,
    reject_match,
)
from debt_tracker.services.payment_history import (
    apply_confirmed_match,
    build_entry,
    classify_payment,
    list_payment_history,
)
from debt_tracker.services.rule_evaluator import RuleMatch, evaluate, score_rule

__all__ = [
    "DebtBalanceInfo",
    "DebtMatchingScheduler",
    "DebtSummary",
    "DuplicateMatchError",
    "MatchCandidate",
    "NotFoundError",
    "PaymentVelocity",
    "PotentialPayment",
    "RecordOutcome",
    "ReviewResult",
    "RuleMatch",
    "RuleValidationError",
    "ScanSummary",
    "SyncResult",
    "apply_confirmed_match",
    "build_default_rules",
    "build_entry",
    "calculate_debt_balance",
    "calculate_debt_summary",
    "calculate_multiple_debt_balances",
    "calculate_payment_velocity",
    "classify_payment",
    "confirm_match",
    "create_manual_match",
    "evaluate",
    "find_matches",
    "find_potential_payments",
    "get_debt_balance",
    "get_debt_summary",
    "get_payment_velocity",
    "get_pending_matches",
    "get_potential_payments",
    "list_payment_history",
    "record_candidate",
    "reject_match",
    "score_rule",
    "should_update_debt_balance",
    "sync_debt_balances",
    "validate_rule",
]
