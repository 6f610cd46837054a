"""Tests for canonical balance, summaries, drift repair, suggestions and velocity."""

import logging
import math
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from debt_tracker.models import DebtStatus, MatchStatus, RuleType
from debt_tracker.services.balance_reconciliation import (
    calculate_debt_balance,
    calculate_debt_summary,
    calculate_multiple_debt_balances,
    calculate_payment_velocity,
    find_potential_payments,
    get_debt_balance,
    get_debt_summary,
    get_potential_payments,
    should_update_debt_balance,
    sync_debt_balances,
)
from debt_tracker.services.match_lifecycle import confirm_match, record_candidate
from debt_tracker.services.match_generator import find_matches
from tests.factories import (
    DebtFactory,
    DebtPaymentFactory,
    MatchFactory,
    PaymentHistoryFactory,
    RuleFactory,
    TransactionFactory,
)


def _confirmed(debt, txn, **kwargs):
    return MatchFactory.build(
        transaction_id=txn.id, debt_id=debt.id, match_status=MatchStatus.CONFIRMED, **kwargs
    )


def test_balance_with_no_payments_is_original() -> None:
    debt = DebtFactory.build(original_amount=Decimal("50000"))

    info = calculate_debt_balance(debt, [], [], [])

    assert info.current_balance == Decimal("50000")
    assert info.total_paid == Decimal("0")
    assert info.progress_percentage == 0.0
    assert info.last_payment_date is None
    assert info.is_fully_paid is False


def test_balance_sums_confirmed_and_manual_payments() -> None:
    debt = DebtFactory.build(original_amount=Decimal("50000"))
    paid = TransactionFactory.build(amount=Decimal("-5000"))
    pending = TransactionFactory.build(amount=Decimal("-7000"))
    rejected = TransactionFactory.build(amount=Decimal("-9000"))
    matches = [
        _confirmed(debt, paid),
        MatchFactory.build(transaction_id=pending.id, debt_id=debt.id, match_status=MatchStatus.PENDING),
        MatchFactory.build(transaction_id=rejected.id, debt_id=debt.id, match_status=MatchStatus.REJECTED),
    ]
    manual = [DebtPaymentFactory.build(debt_id=debt.id, amount=Decimal("2500"), principal=Decimal("2000"))]

    info = calculate_debt_balance(debt, matches, [paid, pending, rejected], [], manual)

    assert info.automatic_payments == Decimal("5000")
    assert info.manual_payments == Decimal("2000")
    assert info.total_paid == Decimal("7000")
    assert info.current_balance == Decimal("43000")
    assert info.progress_percentage == 14.0


def test_history_and_match_for_same_transaction_count_once() -> None:
    debt = DebtFactory.build(original_amount=Decimal("50000"))
    txn = TransactionFactory.build(amount=Decimal("-5000"))
    history = [PaymentHistoryFactory.build(debt_id=debt.id, transaction_id=txn.id, amount=Decimal("5000"))]

    info = calculate_debt_balance(debt, [_confirmed(debt, txn)], [txn], history)

    assert info.total_paid == Decimal("5000")
    assert info.payment_count == 1


def test_history_without_loaded_match_still_counts() -> None:
    debt = DebtFactory.build(original_amount=Decimal("50000"))
    history = [PaymentHistoryFactory.build(debt_id=debt.id, transaction_id="tx_old", amount=Decimal("1500"))]

    info = calculate_debt_balance(debt, [], [], history)

    assert info.current_balance == Decimal("48500")


def test_overpayment_clamps_at_zero_and_caps_progress() -> None:
    debt = DebtFactory.build(original_amount=Decimal("1000"))
    txn = TransactionFactory.build(amount=Decimal("-1500"))

    info = calculate_debt_balance(debt, [_confirmed(debt, txn)], [txn], [])

    assert info.current_balance == Decimal("0")
    assert info.progress_percentage == 100.0
    assert info.is_fully_paid is True


def test_fully_paid_stays_true_as_payments_accumulate() -> None:
    debt = DebtFactory.build(original_amount=Decimal("1000"))
    txns = [TransactionFactory.build(amount=Decimal("-600")) for _ in range(4)]
    matches = [_confirmed(debt, txn) for txn in txns]

    states = [calculate_debt_balance(debt, matches[:n], txns, []).is_fully_paid for n in range(1, 5)]

    assert states == [False, True, True, True]


def test_zero_original_amount_has_zero_progress() -> None:
    debt = DebtFactory.build(original_amount=Decimal("0"))
    assert calculate_debt_balance(debt, [], [], []).progress_percentage == 0.0


def test_excluded_transaction_gives_balance_before_payment() -> None:
    debt = DebtFactory.build(original_amount=Decimal("50000"))
    txn = TransactionFactory.build(amount=Decimal("-5000"))

    info = calculate_debt_balance(debt, [_confirmed(debt, txn)], [txn], [], exclude_transaction_id=txn.id)

    assert info.current_balance == Decimal("50000")


def test_multiple_balances_keep_debts_separate() -> None:
    first = DebtFactory.build(original_amount=Decimal("1000"))
    second = DebtFactory.build(original_amount=Decimal("2000"))
    txn = TransactionFactory.build(amount=Decimal("-400"))

    balances = calculate_multiple_debt_balances([first, second], [_confirmed(first, txn)], [txn], [])

    assert balances[first.id].current_balance == Decimal("600")
    assert balances[second.id].current_balance == Decimal("2000")


def test_summary_aggregates_across_debts() -> None:
    active = DebtFactory.build(original_amount=Decimal("1000"))
    cleared = DebtFactory.build(original_amount=Decimal("3000"))
    txn = TransactionFactory.build(amount=Decimal("-3000"))
    manual = [DebtPaymentFactory.build(debt_id=active.id, principal=Decimal("500"))]

    summary = calculate_debt_summary([active, cleared], [_confirmed(cleared, txn)], [txn], [], manual)

    assert summary.total_debts == 2
    assert summary.active_debts == 1
    assert summary.paid_off_debts == 1
    assert summary.total_original == Decimal("4000")
    assert summary.total_current == Decimal("500")
    assert summary.total_paid == Decimal("3500")
    assert summary.overall_progress == 87.5


def test_summary_of_nothing_is_zero() -> None:
    summary = calculate_debt_summary([], [], [], [])
    assert summary.total_debts == 0
    assert summary.overall_progress == 0.0


def test_should_update_respects_tolerance() -> None:
    debt = DebtFactory.build(original_amount=Decimal("100"), current_balance=Decimal("100"))
    info = calculate_debt_balance(debt, [], [], [])

    assert should_update_debt_balance(debt, info) is False
    debt.current_balance = Decimal("100.01")
    assert should_update_debt_balance(debt, info) is False
    debt.current_balance = Decimal("100.02")
    assert should_update_debt_balance(debt, info) is True


def test_potential_payments_ranked_and_exclude_matched() -> None:
    debt = DebtFactory.build(creditor="Acme Bank")
    rule = RuleFactory.build(debt_id=debt.id, type=RuleType.FUZZY, value="Acme Bank", confidence_threshold=99)
    strong = TransactionFactory.build(merchant_name="Acme Bank")
    weak = TransactionFactory.build(merchant_name="Acme Bank Mortgage Services")
    matched = TransactionFactory.build(merchant_name="Acme Bank")
    incoming = TransactionFactory.build(amount=Decimal("100"), merchant_name="Acme Bank")
    unrelated = TransactionFactory.build(merchant_name=None)
    same_debt_match = MatchFactory.build(transaction_id=matched.id, debt_id=debt.id)

    results = find_potential_payments(debt, [weak, strong, matched, incoming, unrelated], [same_debt_match], [rule])

    assert [item.transaction.id for item in results] == [strong.id, weak.id]
    assert results[0].confidence == 100
    assert results[1].confidence < 90


def test_potential_payments_keep_transactions_matched_to_other_debts() -> None:
    debt = DebtFactory.build(creditor="Acme Bank")
    rule = RuleFactory.build(debt_id=debt.id, value="Acme Bank")
    txn = TransactionFactory.build(merchant_name="Acme Bank")
    elsewhere = MatchFactory.build(transaction_id=txn.id, debt_id=uuid4(), match_status=MatchStatus.CONFIRMED)

    results = find_potential_payments(debt, [txn], [elsewhere], [rule])

    assert [item.transaction.id for item in results] == [txn.id]


def test_potential_payments_with_all_rules_disabled_suggest_nothing() -> None:
    debt = DebtFactory.build(creditor="Acme Bank")
    disabled = RuleFactory.build(debt_id=debt.id, value="Acme Bank", enabled=False)
    txn = TransactionFactory.build(merchant_name="Acme Bank", counterparty_name="Acme Bank")

    assert find_potential_payments(debt, [txn], [], [disabled]) == []


def test_potential_payments_fall_back_to_default_rules() -> None:
    debt = DebtFactory.build(creditor="Acme Bank")
    txn = TransactionFactory.build(counterparty_name="ACME BANK")

    results = find_potential_payments(debt, [txn], [], rules=None)

    assert len(results) == 1
    assert results[0].confidence == 100


def test_velocity_without_payments_is_infinite() -> None:
    debt = DebtFactory.build(original_amount=Decimal("1000"))

    velocity = calculate_payment_velocity(debt, [], [], [])

    assert velocity.average_monthly_payment == Decimal("0")
    assert velocity.payment_frequency == 0
    assert math.isinf(velocity.estimated_payoff_months)


def test_velocity_projects_payoff_from_average() -> None:
    now = datetime(2026, 6, 1, tzinfo=UTC)
    debt = DebtFactory.build(original_amount=Decimal("12000"))
    txns = [
        TransactionFactory.build(amount=Decimal("-1000"), created=now - timedelta(days=days))
        for days in (0, 30, 61)
    ]
    matches = [_confirmed(debt, txn) for txn in txns]

    velocity = calculate_payment_velocity(debt, matches, txns, [], now=now)

    months = 61 / 30.44
    assert velocity.months_observed == round(months, 2)
    assert velocity.average_monthly_payment == (Decimal("3000") / Decimal(str(months))).quantize(Decimal("0.01"))
    assert velocity.payment_frequency == round(3 / months, 2)
    assert velocity.estimated_payoff_months == pytest.approx(9000 / float(velocity.average_monthly_payment), abs=0.1)


def test_velocity_window_is_at_least_one_month() -> None:
    now = datetime(2026, 6, 1, tzinfo=UTC)
    debt = DebtFactory.build(original_amount=Decimal("1000"))
    txn = TransactionFactory.build(amount=Decimal("-200"), created=now - timedelta(days=3))

    velocity = calculate_payment_velocity(debt, [_confirmed(debt, txn)], [txn], [], now=now)

    assert velocity.months_observed == 1.0
    assert velocity.average_monthly_payment == Decimal("200.00")
    assert velocity.estimated_payoff_months == 4.0


# --- Store-backed scenarios ---


@pytest.mark.asyncio
async def test_exact_match_scenario_end_to_end(db):
    debt = await DebtFactory.create_async(db, original_amount=Decimal("50000"))
    rule = await RuleFactory.create_async(db, debt_id=debt.id, type=RuleType.EXACT, value="Acme Bank")
    txn = await TransactionFactory.create_async(db, amount=Decimal("-5000"), merchant_name="Acme Bank")

    [candidate] = find_matches(txn, [debt], [rule])
    outcome = await record_candidate(db, candidate)

    assert candidate.confidence == 100
    assert outcome.payment.balance_after == Decimal("45000")
    assert debt.current_balance == Decimal("45000")
    assert debt.status == DebtStatus.ACTIVE
    assert (await get_debt_balance(db, debt)).current_balance == Decimal("45000")


@pytest.mark.asyncio
async def test_confirming_decreases_canonical_balance_by_amount(db):
    debt = await DebtFactory.create_async(db, original_amount=Decimal("50000"))
    rule = await RuleFactory.create_async(db, debt_id=debt.id, type=RuleType.FUZZY, value="Acme Bank")
    txn = await TransactionFactory.create_async(db, amount=Decimal("-5000"), merchant_name="ACME BANK LTD")
    [candidate] = find_matches(txn, [debt], [rule])
    pending = (await record_candidate(db, candidate)).match

    before = (await get_debt_balance(db, debt)).current_balance
    await confirm_match(db, pending.id)
    after = (await get_debt_balance(db, debt)).current_balance

    assert before == Decimal("50000")
    assert before - after == Decimal("5000")


@pytest.mark.asyncio
async def test_sync_repairs_drift_and_flips_status(db):
    debt = await DebtFactory.create_async(db, original_amount=Decimal("100"), current_balance=Decimal("100"))
    txn = await TransactionFactory.create_async(db, amount=Decimal("-100"))
    await MatchFactory.create_async(db, transaction_id=txn.id, debt_id=debt.id, match_status=MatchStatus.CONFIRMED)
    await PaymentHistoryFactory.create_async(
        db, debt_id=debt.id, transaction_id=txn.id, amount=Decimal("100"), balance_after=Decimal("0")
    )

    info = await get_debt_balance(db, debt)
    assert info.current_balance == Decimal("0")
    assert should_update_debt_balance(debt, info) is True

    result = await sync_debt_balances(db)

    assert result.updated == 1
    assert result.unchanged == 0
    assert result.updated_debt_ids == [debt.id]
    assert debt.current_balance == Decimal("0")
    assert debt.status == DebtStatus.PAID_OFF


@pytest.mark.asyncio
async def test_sync_twice_updates_nothing_second_time(db):
    drifted = await DebtFactory.create_async(db, original_amount=Decimal("1000"), current_balance=Decimal("10"))
    await DebtFactory.create_async(db, original_amount=Decimal("500"))

    first = await sync_debt_balances(db)
    second = await sync_debt_balances(db)

    assert (first.updated, first.unchanged) == (1, 1)
    assert (second.updated, second.unchanged) == (0, 2)
    assert drifted.current_balance == Decimal("1000")


@pytest.mark.asyncio
async def test_get_potential_payments_uses_recent_window(db):
    debt = await DebtFactory.create_async(db, creditor="Acme Bank")
    recent = await TransactionFactory.create_async(db, merchant_name="Acme Bank")
    await TransactionFactory.create_async(
        db, merchant_name="Acme Bank", created=datetime.now(UTC) - timedelta(days=90)
    )

    results = await get_potential_payments(db, debt, days=30)

    assert [item.transaction.id for item in results] == [recent.id]


@pytest.mark.asyncio
async def test_get_potential_payments_ignores_matches_to_other_debts(db):
    debt = await DebtFactory.create_async(db, creditor="Acme Bank")
    other = await DebtFactory.create_async(db, creditor="Acme Bank Loans")
    shared = await TransactionFactory.create_async(db, merchant_name="Acme Bank")
    own = await TransactionFactory.create_async(db, merchant_name="Acme Bank")
    await MatchFactory.create_async(db, transaction_id=shared.id, debt_id=other.id)
    await MatchFactory.create_async(db, transaction_id=own.id, debt_id=debt.id)

    results = await get_potential_payments(db, debt, days=30)

    assert [item.transaction.id for item in results] == [shared.id]


@pytest.mark.asyncio
async def test_get_debt_summary_logs_timing(db, caplog):
    await DebtFactory.create_async(db, original_amount=Decimal("1000"), current_balance=Decimal("1000"))

    with caplog.at_level(logging.INFO):
        summary = await get_debt_summary(db)

    assert summary.active_debts == 1
    assert "summarise_debts completed" in caplog.text
