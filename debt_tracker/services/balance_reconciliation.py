"""Balance reconciliation: derive canonical debt balances from payment evidence.

The canonical balance of a debt is ``original_amount`` minus every payment the
system knows about, clamped at zero. Payments come from three places:

- confirmed transaction matches (the transaction's absolute amount)
- payment history entries whose transaction is not already counted above
- manual payments entered by the user (their principal)

The stored ``Debt.current_balance`` is only a cache of that figure and is
repaired by :func:`sync_debt_balances`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.config import settings
from debt_tracker.logger import get_logger, log_timing
from debt_tracker.models import (
    CreditorMatchingRule,
    Debt,
    DebtPayment,
    DebtPaymentHistory,
    DebtStatus,
    DebtTransactionMatch,
    MatchStatus,
    RuleField,
    Transaction,
)
from debt_tracker.services.match_generator import build_default_rules
from debt_tracker.services.rule_evaluator import score_rule

logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
DAYS_PER_MONTH = 30.44


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class PaymentEvent:
    """One payment counted toward a debt's canonical balance."""

    amount: Decimal
    paid_at: datetime
    is_automatic: bool
    transaction_id: str | None = None


@dataclass
class DebtBalanceInfo:
    """Canonical balance of a debt and the payments behind it."""

    debt_id: UUID
    original_amount: Decimal
    current_balance: Decimal
    total_paid: Decimal
    progress_percentage: float
    automatic_payments: Decimal
    manual_payments: Decimal
    payment_count: int
    last_payment_date: datetime | None
    is_fully_paid: bool


@dataclass
class DebtSummary:
    """Aggregate figures across a set of debts."""

    total_debts: int
    active_debts: int
    paid_off_debts: int
    total_original: Decimal
    total_current: Decimal
    total_paid: Decimal
    overall_progress: float
    balances: list[DebtBalanceInfo] = field(default_factory=list)


@dataclass
class PaymentVelocity:
    """How quickly a debt is being paid down."""

    debt_id: UUID
    average_monthly_payment: Decimal
    payment_frequency: float
    estimated_payoff_months: float
    months_observed: float


@dataclass(frozen=True)
class PotentialPayment:
    """An unmatched outgoing transaction that resembles a payment toward a debt."""

    transaction: Transaction
    confidence: int
    rule_id: UUID | None
    matched_field: RuleField
    matched_value: str


@dataclass
class BalanceInputs:
    """Everything the pure balance calculations need, loaded from the store."""

    debts: list[Debt]
    matches: list[DebtTransactionMatch]
    transactions: dict[str, Transaction]
    history: list[DebtPaymentHistory]
    manual_payments: list[DebtPayment]


@dataclass
class SyncResult:
    """Outcome of a balance sync pass."""

    updated: int = 0
    unchanged: int = 0
    updated_debt_ids: list[UUID] = field(default_factory=list)


def _index_transactions(
    transactions: Mapping[str, Transaction] | Iterable[Transaction],
) -> Mapping[str, Transaction]:
    if isinstance(transactions, Mapping):
        return transactions
    return {txn.id: txn for txn in transactions}


def collect_payment_events(
    debt: Debt,
    matches: Iterable[DebtTransactionMatch],
    transactions: Mapping[str, Transaction] | Iterable[Transaction],
    history: Iterable[DebtPaymentHistory],
    manual_payments: Iterable[DebtPayment] = (),
    *,
    exclude_transaction_id: str | None = None,
) -> list[PaymentEvent]:
    """Gather the payments that count toward ``debt``, each transaction once.

    Only confirmed matches contribute; pending and rejected matches never move a
    balance. A history entry is ignored when its transaction was already counted
    through a confirmed match.
    """
    txn_by_id = _index_transactions(transactions)
    events: list[PaymentEvent] = []
    counted: set[str] = set()

    for match in matches:
        if match.debt_id != debt.id or match.match_status != MatchStatus.CONFIRMED:
            continue
        if match.transaction_id == exclude_transaction_id or match.transaction_id in counted:
            continue
        txn = txn_by_id.get(match.transaction_id)
        if txn is None or txn.amount >= 0:
            continue
        counted.add(txn.id)
        events.append(
            PaymentEvent(
                amount=abs(_to_decimal(txn.amount)),
                paid_at=_as_utc(txn.created),
                is_automatic=True,
                transaction_id=txn.id,
            )
        )

    for entry in history:
        if entry.debt_id != debt.id:
            continue
        if entry.transaction_id == exclude_transaction_id or entry.transaction_id in counted:
            continue
        counted.add(entry.transaction_id)
        events.append(
            PaymentEvent(
                amount=abs(_to_decimal(entry.amount)),
                paid_at=_as_utc(entry.payment_date),
                is_automatic=True,
                transaction_id=entry.transaction_id,
            )
        )

    for payment in manual_payments:
        if payment.debt_id != debt.id:
            continue
        events.append(
            PaymentEvent(
                amount=abs(_to_decimal(payment.principal)),
                paid_at=_as_utc(payment.payment_date),
                is_automatic=False,
            )
        )

    return events


def _balance_from_events(debt: Debt, events: Sequence[PaymentEvent]) -> DebtBalanceInfo:
    original = _to_decimal(debt.original_amount)
    automatic = sum((event.amount for event in events if event.is_automatic), ZERO)
    manual = sum((event.amount for event in events if not event.is_automatic), ZERO)
    total_paid = automatic + manual
    current = max(ZERO, original - total_paid)

    if original > 0:
        progress = min(100.0, float(total_paid / original * 100))
    else:
        progress = 0.0

    return DebtBalanceInfo(
        debt_id=debt.id,
        original_amount=original,
        current_balance=current,
        total_paid=total_paid,
        progress_percentage=round(progress, 2),
        automatic_payments=automatic,
        manual_payments=manual,
        payment_count=len(events),
        last_payment_date=max((event.paid_at for event in events), default=None),
        is_fully_paid=current <= 0,
    )


def calculate_debt_balance(
    debt: Debt,
    matches: Iterable[DebtTransactionMatch],
    transactions: Mapping[str, Transaction] | Iterable[Transaction],
    history: Iterable[DebtPaymentHistory],
    manual_payments: Iterable[DebtPayment] = (),
    *,
    exclude_transaction_id: str | None = None,
) -> DebtBalanceInfo:
    """Compute the canonical balance of one debt.

    ``exclude_transaction_id`` leaves one transaction out, which gives the balance
    as it stood before that payment was applied.
    """
    events = collect_payment_events(
        debt,
        matches,
        transactions,
        history,
        manual_payments,
        exclude_transaction_id=exclude_transaction_id,
    )
    return _balance_from_events(debt, events)


def calculate_multiple_debt_balances(
    debts: Iterable[Debt],
    matches: Iterable[DebtTransactionMatch],
    transactions: Mapping[str, Transaction] | Iterable[Transaction],
    history: Iterable[DebtPaymentHistory],
    manual_payments: Iterable[DebtPayment] = (),
) -> dict[UUID, DebtBalanceInfo]:
    """Compute canonical balances for many debts in one pass over the inputs."""
    txn_by_id = _index_transactions(transactions)

    matches_by_debt: dict[UUID, list[DebtTransactionMatch]] = {}
    for match in matches:
        matches_by_debt.setdefault(match.debt_id, []).append(match)
    history_by_debt: dict[UUID, list[DebtPaymentHistory]] = {}
    for entry in history:
        history_by_debt.setdefault(entry.debt_id, []).append(entry)
    manual_by_debt: dict[UUID, list[DebtPayment]] = {}
    for payment in manual_payments:
        manual_by_debt.setdefault(payment.debt_id, []).append(payment)

    return {
        debt.id: calculate_debt_balance(
            debt,
            matches_by_debt.get(debt.id, []),
            txn_by_id,
            history_by_debt.get(debt.id, []),
            manual_by_debt.get(debt.id, []),
        )
        for debt in debts
    }


def calculate_debt_summary(
    debts: Sequence[Debt],
    matches: Iterable[DebtTransactionMatch],
    transactions: Mapping[str, Transaction] | Iterable[Transaction],
    history: Iterable[DebtPaymentHistory],
    manual_payments: Iterable[DebtPayment] = (),
) -> DebtSummary:
    """Summarise canonical balances across ``debts``."""
    balances = calculate_multiple_debt_balances(debts, matches, transactions, history, manual_payments)
    infos = [balances[debt.id] for debt in debts]

    total_original = sum((info.original_amount for info in infos), ZERO)
    total_current = sum((info.current_balance for info in infos), ZERO)
    total_paid = sum((info.total_paid for info in infos), ZERO)
    paid_off = sum(1 for info in infos if info.is_fully_paid)

    overall = 0.0
    if total_original > 0:
        overall = min(100.0, float(total_paid / total_original * 100))

    return DebtSummary(
        total_debts=len(infos),
        active_debts=len(infos) - paid_off,
        paid_off_debts=paid_off,
        total_original=total_original,
        total_current=total_current,
        total_paid=total_paid,
        overall_progress=round(overall, 2),
        balances=infos,
    )


def should_update_debt_balance(
    debt: Debt,
    info: DebtBalanceInfo,
    tolerance: Decimal | None = None,
) -> bool:
    """True when the stored balance has drifted beyond ``tolerance`` from canonical."""
    if tolerance is None:
        tolerance = settings.balance_tolerance
    return abs(_to_decimal(debt.current_balance) - info.current_balance) > tolerance


def find_potential_payments(
    debt: Debt,
    transactions: Iterable[Transaction],
    matches: Iterable[DebtTransactionMatch],
    rules: Iterable[CreditorMatchingRule] | None = None,
) -> list[PotentialPayment]:
    """Rank unmatched outgoing transactions by how well they fit ``debt``'s rules.

    Rule thresholds are ignored so that near-misses are visible. When the debt has
    no rules at all, the default creditor rules are evaluated in memory instead;
    disabled rules count, so switching every rule off yields no suggestions.
    Transactions already matched to this debt, in any status, are left out.
    Matches to other debts do not hide a transaction.
    """
    owned = [rule for rule in (rules or []) if rule.debt_id == debt.id]
    debt_rules = [rule for rule in owned if rule.enabled] if owned else build_default_rules(debt)
    if not debt_rules:
        return []

    matched_ids = {match.transaction_id for match in matches if match.debt_id == debt.id}
    results: list[PotentialPayment] = []
    for txn in transactions:
        if txn.amount >= 0 or txn.id in matched_ids:
            continue
        best: PotentialPayment | None = None
        for rule in debt_rules:
            scored = score_rule(txn, rule)
            if scored is None or scored.confidence <= 0:
                continue
            if best is None or scored.confidence > best.confidence:
                best = PotentialPayment(
                    transaction=txn,
                    confidence=scored.confidence,
                    rule_id=rule.id,
                    matched_field=scored.matched_field,
                    matched_value=scored.matched_value,
                )
        if best is not None:
            results.append(best)

    results.sort(key=lambda item: (item.confidence, _as_utc(item.transaction.created)), reverse=True)
    return results


def calculate_payment_velocity(
    debt: Debt,
    matches: Iterable[DebtTransactionMatch],
    transactions: Mapping[str, Transaction] | Iterable[Transaction],
    history: Iterable[DebtPaymentHistory],
    manual_payments: Iterable[DebtPayment] = (),
    *,
    now: datetime | None = None,
) -> PaymentVelocity:
    """Average monthly payment, payment frequency and projected payoff for a debt.

    The observation window runs from the first payment to ``now`` and is never
    shorter than one month. With no payments the payoff estimate is infinite.
    """
    events = collect_payment_events(debt, matches, transactions, history, manual_payments)
    info = _balance_from_events(debt, events)
    current_time = _as_utc(now or datetime.now(UTC))

    if events:
        first = min(event.paid_at for event in events)
        days = max(0.0, (current_time - first).total_seconds() / 86400)
        months_span = max(1.0, days / DAYS_PER_MONTH)
    else:
        months_span = 1.0

    average = (info.total_paid / Decimal(str(months_span))).quantize(CENT, rounding=ROUND_HALF_UP)
    frequency = len(events) / months_span

    if average > 0:
        payoff = float(info.current_balance / average)
    else:
        payoff = float("inf")

    return PaymentVelocity(
        debt_id=debt.id,
        average_monthly_payment=average,
        payment_frequency=round(frequency, 2),
        estimated_payoff_months=payoff if payoff == float("inf") else round(payoff, 1),
        months_observed=round(months_span, 2),
    )


# =============================================================================
# Store-backed operations
# =============================================================================


async def load_balance_inputs(
    db: AsyncSession,
    debt_ids: Sequence[UUID] | None = None,
) -> BalanceInputs:
    """Load debts plus the confirmed matches, history and manual payments behind them."""
    debt_query = select(Debt).order_by(Debt.created_at)
    if debt_ids is not None:
        debt_query = debt_query.where(Debt.id.in_(debt_ids))
    debts = list((await db.execute(debt_query)).scalars())
    ids = [debt.id for debt in debts]
    if not ids:
        return BalanceInputs(debts=[], matches=[], transactions={}, history=[], manual_payments=[])

    matches = list(
        (
            await db.execute(
                select(DebtTransactionMatch)
                .where(DebtTransactionMatch.debt_id.in_(ids))
                .where(DebtTransactionMatch.match_status == MatchStatus.CONFIRMED)
            )
        ).scalars()
    )
    history = list(
        (await db.execute(select(DebtPaymentHistory).where(DebtPaymentHistory.debt_id.in_(ids)))).scalars()
    )
    manual = list((await db.execute(select(DebtPayment).where(DebtPayment.debt_id.in_(ids)))).scalars())

    txn_ids = {match.transaction_id for match in matches}
    transactions: dict[str, Transaction] = {}
    if txn_ids:
        result = await db.execute(select(Transaction).where(Transaction.id.in_(txn_ids)))
        transactions = {txn.id: txn for txn in result.scalars()}

    return BalanceInputs(
        debts=debts,
        matches=matches,
        transactions=transactions,
        history=history,
        manual_payments=manual,
    )


async def get_debt_balance(
    db: AsyncSession,
    debt: Debt,
    *,
    exclude_transaction_id: str | None = None,
) -> DebtBalanceInfo:
    """Canonical balance of one debt as the store currently records it."""
    inputs = await load_balance_inputs(db, [debt.id])
    return calculate_debt_balance(
        debt,
        inputs.matches,
        inputs.transactions,
        inputs.history,
        inputs.manual_payments,
        exclude_transaction_id=exclude_transaction_id,
    )


async def get_debt_summary(db: AsyncSession) -> DebtSummary:
    inputs = await load_balance_inputs(db)
    with log_timing("summarise_debts", logger=logger, debts=len(inputs.debts)):
        return calculate_debt_summary(
            inputs.debts, inputs.matches, inputs.transactions, inputs.history, inputs.manual_payments
        )


async def get_payment_velocity(db: AsyncSession, debt: Debt) -> PaymentVelocity:
    inputs = await load_balance_inputs(db, [debt.id])
    return calculate_payment_velocity(
        debt, inputs.matches, inputs.transactions, inputs.history, inputs.manual_payments
    )


async def get_potential_payments(
    db: AsyncSession,
    debt: Debt,
    *,
    days: int | None = None,
    limit: int = 20,
) -> list[PotentialPayment]:
    """Unmatched outgoing transactions from the recent window that look like payments to ``debt``."""
    window = days or settings.scan_window_days
    since = datetime.now(UTC) - timedelta(days=window)

    transactions = list(
        (
            await db.execute(
                select(Transaction)
                .where(Transaction.created >= since)
                .where(Transaction.amount < 0)
                .order_by(Transaction.created.desc())
            )
        ).scalars()
    )
    if not transactions:
        return []

    txn_ids = [txn.id for txn in transactions]
    matches = list(
        (
            await db.execute(
                select(DebtTransactionMatch)
                .where(DebtTransactionMatch.debt_id == debt.id)
                .where(DebtTransactionMatch.transaction_id.in_(txn_ids))
            )
        ).scalars()
    )
    rules = list(
        (
            await db.execute(select(CreditorMatchingRule).where(CreditorMatchingRule.debt_id == debt.id))
        ).scalars()
    )
    return find_potential_payments(debt, transactions, matches, rules)[:limit]


async def sync_debt_balances(db: AsyncSession) -> SyncResult:
    """Overwrite drifted stored balances with their canonical value.

    Running it twice in a row updates nothing the second time.
    """
    inputs = await load_balance_inputs(db)
    balances = calculate_multiple_debt_balances(
        inputs.debts, inputs.matches, inputs.transactions, inputs.history, inputs.manual_payments
    )

    result = SyncResult()
    for debt in inputs.debts:
        info = balances[debt.id]
        if not should_update_debt_balance(debt, info):
            result.unchanged += 1
            continue

        logger.info(
            "Repairing drifted debt balance",
            debt_id=str(debt.id),
            stored=str(debt.current_balance),
            canonical=str(info.current_balance),
        )
        debt.current_balance = info.current_balance
        debt.status = DebtStatus.PAID_OFF if info.is_fully_paid else DebtStatus.ACTIVE
        result.updated += 1
        result.updated_debt_ids.append(debt.id)

    await db.flush()
    logger.info("Debt balances synced", updated=result.updated, unchanged=result.unchanged)
    return result
