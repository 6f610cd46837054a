"""Tests for match candidate generation, rule validation and default rules."""

from decimal import Decimal
from uuid import uuid4

from debt_tracker.models import DebtStatus, RuleField, RuleType
from debt_tracker.services.match_generator import (
    build_default_rules,
    credit_card_patterns,
    find_matches,
    is_likely_credit_card,
    validate_rule,
)
from tests.factories import DebtFactory, RuleFactory, TransactionFactory


def test_outgoing_transaction_produces_candidate() -> None:
    debt = DebtFactory.build()
    rule = RuleFactory.build(debt_id=debt.id, value="Acme Bank")
    txn = TransactionFactory.build(amount=Decimal("-5000"), merchant_name="Acme Bank")

    candidates = find_matches(txn, [debt], [rule])

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.transaction_id == txn.id
    assert candidate.debt_id == debt.id
    assert candidate.rule_id == rule.id
    assert candidate.confidence == 100
    assert candidate.matched_field == RuleField.MERCHANT_NAME


def test_incoming_and_zero_transactions_produce_nothing() -> None:
    debt = DebtFactory.build()
    rule = RuleFactory.build(debt_id=debt.id)

    assert find_matches(TransactionFactory.build(amount=Decimal("5000"), merchant_name="Acme Bank"), [debt], [rule]) == []
    assert find_matches(TransactionFactory.build(amount=Decimal("0"), merchant_name="Acme Bank"), [debt], [rule]) == []


def test_paid_off_debt_is_ignored() -> None:
    debt = DebtFactory.build(status=DebtStatus.PAID_OFF)
    rule = RuleFactory.build(debt_id=debt.id)
    txn = TransactionFactory.build(merchant_name="Acme Bank")

    assert find_matches(txn, [debt], [rule]) == []


def test_disabled_rule_is_ignored() -> None:
    debt = DebtFactory.build()
    rule = RuleFactory.build(debt_id=debt.id, enabled=False)
    txn = TransactionFactory.build(merchant_name="Acme Bank")

    assert find_matches(txn, [debt], [rule]) == []


def test_rule_of_another_debt_does_not_apply() -> None:
    debt = DebtFactory.build()
    rule = RuleFactory.build(debt_id=uuid4())
    txn = TransactionFactory.build(merchant_name="Acme Bank")

    assert find_matches(txn, [debt], [rule]) == []


def test_best_rule_per_debt_wins() -> None:
    debt = DebtFactory.build()
    fuzzy = RuleFactory.build(debt_id=debt.id, type=RuleType.FUZZY, value="Acme")
    exact = RuleFactory.build(debt_id=debt.id, type=RuleType.EXACT, value="Acme Bank Ltd")
    txn = TransactionFactory.build(merchant_name="Acme Bank Ltd")

    candidates = find_matches(txn, [debt], [fuzzy, exact])

    assert len(candidates) == 1
    assert candidates[0].rule_id == exact.id
    assert candidates[0].confidence == 100


def test_ambiguous_transaction_yields_one_candidate_per_debt_sorted() -> None:
    first = DebtFactory.build()
    second = DebtFactory.build()
    rules = [
        RuleFactory.build(debt_id=first.id, type=RuleType.FUZZY, value="Acme Bank"),
        RuleFactory.build(debt_id=second.id, type=RuleType.EXACT, value="Acme Bank Ltd"),
    ]
    txn = TransactionFactory.build(merchant_name="Acme Bank Ltd")

    candidates = find_matches(txn, [first, second], rules)

    assert [c.debt_id for c in candidates] == [second.id, first.id]
    assert candidates[0].confidence >= candidates[1].confidence


def test_validate_rule_accepts_valid_definition() -> None:
    errors = validate_rule(
        debt_id=uuid4(),
        rule_type=RuleType.FUZZY,
        field=RuleField.DESCRIPTION,
        value="Acme",
        confidence_threshold=75,
    )
    assert errors == []


def test_validate_rule_collects_every_problem() -> None:
    errors = validate_rule(
        debt_id=None,
        rule_type="regex",
        field="amount",
        value="  ",
        confidence_threshold=120,
    )

    assert "Debt ID is required" in errors
    assert any("rule type" in error for error in errors)
    assert any("field" in error for error in errors)
    assert "Rule value is required" in errors
    assert "Confidence threshold must be between 0 and 100" in errors


def test_validate_rule_rejects_uncompilable_pattern() -> None:
    errors = validate_rule(
        debt_id=uuid4(),
        rule_type="pattern",
        field="description",
        value="(unclosed",
    )
    assert errors == ["Invalid regex pattern"]


def test_default_rules_for_plain_creditor() -> None:
    debt = DebtFactory.build(creditor="Acme Bank")

    rules = build_default_rules(debt)

    summary = {(rule.type, rule.field, rule.confidence_threshold) for rule in rules}
    assert summary == {
        (RuleType.EXACT, RuleField.MERCHANT_NAME, 85),
        (RuleType.EXACT, RuleField.COUNTERPARTY_NAME, 85),
        (RuleType.FUZZY, RuleField.DESCRIPTION, 75),
    }
    assert all(rule.debt_id == debt.id and rule.enabled for rule in rules)
    assert all(rule.value == "Acme Bank" for rule in rules)


def test_default_rules_for_empty_creditor() -> None:
    assert build_default_rules(DebtFactory.build(creditor="  ")) == []


def test_default_rules_add_issuer_patterns_for_card_creditors() -> None:
    debt = DebtFactory.build(creditor="Barclays Credit Card")

    rules = build_default_rules(debt)

    patterns = [rule for rule in rules if rule.type == RuleType.PATTERN]
    assert patterns
    assert all(rule.confidence_threshold == 80 for rule in patterns)
    assert all("barclays" in rule.value for rule in patterns)


def test_card_without_known_issuer_gets_no_patterns() -> None:
    assert is_likely_credit_card("Acme Credit Card")
    assert credit_card_patterns("Acme Credit Card") == []
    assert not is_likely_credit_card("Acme Bank Loan")


def test_issuer_patterns_match_card_payments() -> None:
    debt = DebtFactory.build(creditor="M&S Credit Card")
    rules = [rule for rule in build_default_rules(debt) if rule.type == RuleType.PATTERN]
    txn = TransactionFactory.build(description="M&S card payment thank you")

    assert find_matches(txn, [debt], rules)
