"""Rule evaluation: score one transaction against one creditor matching rule."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from difflib import SequenceMatcher
from functools import lru_cache

from debt_tracker.logger import get_logger
from debt_tracker.models import CreditorMatchingRule, RuleField, RuleType, Transaction

logger = get_logger(__name__)

MAX_CONFIDENCE = 100
# Fuzzy bands: containment of the rule value always outranks token overlap
CONTAINMENT_FLOOR = 85
REVERSE_CONTAINMENT_FLOOR = 70
OVERLAP_CEILING = 84


@dataclass(frozen=True)
class RuleMatch:
    """Outcome of evaluating a rule against a transaction."""

    is_match: bool
    confidence: int
    matched_field: RuleField
    matched_value: str


def _counterparty_name(transaction: Transaction) -> str | None:
    return transaction.counterparty_name or transaction.counterparty_preferred_name


FIELD_EXTRACTORS: dict[RuleField, Callable[[Transaction], str | None]] = {
    RuleField.MERCHANT_NAME: lambda txn: txn.merchant_name,
    RuleField.COUNTERPARTY_NAME: _counterparty_name,
    RuleField.DESCRIPTION: lambda txn: txn.description,
    RuleField.ACCOUNT_NUMBER: lambda txn: txn.account_number,
}


def extract_field_value(transaction: Transaction, field: RuleField) -> str | None:
    """Return the transaction's value for ``field`` or None when absent/blank."""
    value = FIELD_EXTRACTORS[RuleField(field)](transaction)
    if value is None or not value.strip():
        return None
    return value


def normalize_text(value: str) -> str:
    """Lower-case, trim, and collapse internal whitespace."""
    return re.sub(r"\s+", " ", value.lower()).strip()


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str] | None:
    """Compile a rule pattern case-insensitively.

    Invalid patterns compile to None and are reported once per distinct source.
    """
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        logger.warning(
            "Invalid pattern rule - treating as non-matching",
            pattern=pattern,
            error=str(exc),
        )
        return None


def score_exact(field_value: str, rule_value: str) -> int:
    """Case-insensitive, whitespace-trimmed equality."""
    return MAX_CONFIDENCE if field_value.strip().lower() == rule_value.strip().lower() else 0


def score_account(field_value: str, rule_value: str) -> int:
    """Exact account-number equality."""
    return MAX_CONFIDENCE if field_value.strip() == rule_value.strip() else 0


def score_pattern(field_value: str, rule_value: str) -> int:
    """Regex search against the field."""
    compiled = compile_pattern(rule_value)
    if compiled is None:
        return 0
    return MAX_CONFIDENCE if compiled.search(field_value) else 0


def score_fuzzy(field_value: str, rule_value: str) -> int:
    """Similarity score (0-100) between a field and a rule value.

    Scoring tiers:
    - Equal after normalization: 100
    - Rule value contained in the field: 85-89, higher when it covers more of the field
    - Field contained in the rule value: 70-84
    - Otherwise: blend of edit-distance ratio and token overlap, capped at 84
    """
    norm_field = normalize_text(field_value)
    norm_rule = normalize_text(rule_value)
    if not norm_field or not norm_rule:
        return 0
    if norm_field == norm_rule:
        return MAX_CONFIDENCE

    if norm_rule in norm_field:
        coverage = len(norm_rule) / len(norm_field)
        return int(CONTAINMENT_FLOOR + 5 * coverage)
    if norm_field in norm_rule:
        coverage = len(norm_field) / len(norm_rule)
        return int(REVERSE_CONTAINMENT_FLOOR + 15 * coverage)

    ratio = SequenceMatcher(None, norm_field, norm_rule).ratio()
    tokens_field = set(norm_field.split())
    tokens_rule = set(norm_rule.split())
    token_score = len(tokens_field & tokens_rule) / len(tokens_field | tokens_rule)
    return min(OVERLAP_CEILING, round(100 * (0.6 * ratio + 0.4 * token_score)))


SCORERS: dict[RuleType, Callable[[str, str], int]] = {
    RuleType.EXACT: score_exact,
    RuleType.FUZZY: score_fuzzy,
    RuleType.PATTERN: score_pattern,
    RuleType.ACCOUNT: score_account,
}


def score_rule(transaction: Transaction, rule: CreditorMatchingRule) -> RuleMatch | None:
    """Score a rule without applying its threshold.

    Returns None when the transaction lacks the field the rule reads. Account rules
    only ever read the account number.
    """
    rule_type = RuleType(rule.type)
    field = RuleField.ACCOUNT_NUMBER if rule_type == RuleType.ACCOUNT else RuleField(rule.field)
    field_value = extract_field_value(transaction, field)
    if field_value is None or not rule.value or not rule.value.strip():
        return None

    confidence = max(0, min(MAX_CONFIDENCE, SCORERS[rule_type](field_value, rule.value)))
    return RuleMatch(
        is_match=confidence > 0 and confidence >= rule.confidence_threshold,
        confidence=confidence,
        matched_field=field,
        matched_value=field_value,
    )


def evaluate(transaction: Transaction, rule: CreditorMatchingRule) -> RuleMatch | None:
    """Evaluate a rule; returns a match only when confidence clears the rule's threshold."""
    result = score_rule(transaction, rule)
    if result is None or not result.is_match:
        return None
    return result
