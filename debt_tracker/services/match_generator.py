"""Match generation: turn one transaction into debt match candidates."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID, uuid4

from debt_tracker.config import settings
from debt_tracker.models import (
    CreditorMatchingRule,
    Debt,
    DebtStatus,
    RuleField,
    RuleType,
    Transaction,
)
from debt_tracker.services.rule_evaluator import compile_pattern, evaluate

CARD_KEYWORDS = (
    "credit card",
    "card",
    "visa",
    "mastercard",
    "amex",
    "american express",
    "barclaycard",
)

CARD_ISSUERS = (
    "barclays",
    "lloyds",
    "hsbc",
    "santander",
    "natwest",
    "halifax",
    "tesco",
    "m&s",
    "marks spencer",
    "john lewis",
    "argos",
)

CARD_PATTERN_THRESHOLD = 80


@dataclass(frozen=True)
class MatchCandidate:
    """A debt a transaction may be paying, with the rule that found it."""

    transaction_id: str
    debt_id: UUID
    rule_id: UUID
    confidence: int
    matched_field: RuleField
    matched_value: str


def find_matches(
    transaction: Transaction,
    debts: Iterable[Debt],
    rules: Iterable[CreditorMatchingRule],
) -> list[MatchCandidate]:
    """Return candidates for every active debt with a rule that clears its threshold.

    Only outgoing transactions are considered. Candidates against different debts are
    independent; the highest-confidence rule per debt wins. Results are ordered by
    confidence, highest first.
    """
    if transaction.amount >= 0:
        return []

    rules_by_debt: dict[UUID, list[CreditorMatchingRule]] = {}
    for rule in rules:
        if rule.enabled:
            rules_by_debt.setdefault(rule.debt_id, []).append(rule)

    candidates: list[MatchCandidate] = []
    for debt in debts:
        if debt.status != DebtStatus.ACTIVE:
            continue

        best: MatchCandidate | None = None
        for rule in rules_by_debt.get(debt.id, []):
            result = evaluate(transaction, rule)
            if result is None or result.confidence < rule.confidence_threshold:
                continue
            if best is None or result.confidence > best.confidence:
                best = MatchCandidate(
                    transaction_id=transaction.id,
                    debt_id=debt.id,
                    rule_id=rule.id,
                    confidence=result.confidence,
                    matched_field=result.matched_field,
                    matched_value=result.matched_value,
                )
        if best is not None:
            candidates.append(best)

    return sorted(candidates, key=lambda candidate: candidate.confidence, reverse=True)


def validate_rule(
    *,
    debt_id: UUID | None,
    rule_type: RuleType | str | None,
    field: RuleField | str | None,
    value: str | None,
    confidence_threshold: int | None = None,
) -> list[str]:
    """Return human-readable problems with a rule definition (empty when valid)."""
    errors: list[str] = []

    if not debt_id:
        errors.append("Debt ID is required")

    valid_types = {item.value for item in RuleType}
    type_value = rule_type.value if isinstance(rule_type, RuleType) else rule_type
    if type_value not in valid_types:
        errors.append("Valid rule type is required (exact, fuzzy, pattern, account)")

    valid_fields = {item.value for item in RuleField}
    field_value = field.value if isinstance(field, RuleField) else field
    if field_value not in valid_fields:
        errors.append("Valid field is required (merchant_name, counterparty_name, description, account_number)")

    if not value or not value.strip():
        errors.append("Rule value is required")
    elif type_value == RuleType.PATTERN.value and compile_pattern(value) is None:
        errors.append("Invalid regex pattern")

    if confidence_threshold is not None and not 0 <= confidence_threshold <= 100:
        errors.append("Confidence threshold must be between 0 and 100")

    return errors


def is_likely_credit_card(creditor: str) -> bool:
    lowered = creditor.lower()
    return any(keyword in lowered for keyword in CARD_KEYWORDS)


def credit_card_patterns(creditor: str) -> list[str]:
    """Issuer-specific payment patterns for a card creditor."""
    lowered = creditor.lower()
    patterns: list[str] = []
    for issuer in CARD_ISSUERS:
        if issuer in lowered:
            token = re.escape(issuer)
            patterns.append(f"{token}.*payment|payment.*{token}")
            patterns.append(f"{token}.*card|card.*{token}")
    return patterns


def build_default_rules(debt: Debt) -> list[CreditorMatchingRule]:
    """Build the starter rule set for a debt from its creditor name.

    Rules are returned unsaved. An empty creditor yields no rules.
    """
    creditor = (debt.creditor or "").strip()
    if not creditor:
        return []

    definitions: list[tuple[RuleType, RuleField, str, int]] = [
        (RuleType.EXACT, RuleField.MERCHANT_NAME, creditor, settings.default_rule_threshold),
        (RuleType.EXACT, RuleField.COUNTERPARTY_NAME, creditor, settings.default_rule_threshold),
        (RuleType.FUZZY, RuleField.DESCRIPTION, creditor, settings.default_description_threshold),
    ]
    if is_likely_credit_card(creditor):
        definitions.extend(
            (RuleType.PATTERN, RuleField.DESCRIPTION, pattern, CARD_PATTERN_THRESHOLD)
            for pattern in credit_card_patterns(creditor)
        )

    return [
        CreditorMatchingRule(
            id=uuid4(),
            debt_id=debt.id,
            type=rule_type,
            field=field,
            value=value,
            confidence_threshold=threshold,
            enabled=True,
        )
        for rule_type, field, value, threshold in definitions
    ]
