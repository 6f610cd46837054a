"""Payment history: turn confirmed matches into immutable payment records."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.logger import get_logger
from debt_tracker.models import (
    Debt,
    DebtPaymentHistory,
    DebtStatus,
    DebtTransactionMatch,
    MatchStatus,
    MatchType,
    PaymentType,
    Transaction,
)
from debt_tracker.services.balance_reconciliation import get_debt_balance

logger = get_logger(__name__)

ZERO = Decimal("0")
# Payments up to 10% above the minimum still count as a minimum payment
MINIMUM_PAYMENT_MARGIN = Decimal("1.1")


def classify_payment(
    amount: Decimal,
    balance_after: Decimal,
    minimum_payment: Decimal | None,
) -> PaymentType:
    """Classify a payment against the debt's minimum payment."""
    if balance_after <= 0:
        return PaymentType.FINAL
    if minimum_payment is None or minimum_payment <= 0:
        return PaymentType.REGULAR
    if amount > minimum_payment * MINIMUM_PAYMENT_MARGIN:
        return PaymentType.EXTRA
    return PaymentType.MINIMUM


def build_entry(
    match: DebtTransactionMatch,
    debt: Debt,
    transaction: Transaction,
    canonical_balance: Decimal,
) -> DebtPaymentHistory:
    """Build the (unsaved) history entry for a confirmed match.

    ``canonical_balance`` is the debt's balance before this payment. The balance
    after is clamped at zero.
    """
    amount = abs(transaction.amount)
    balance_after = max(ZERO, canonical_balance - amount)
    return DebtPaymentHistory(
        debt_id=debt.id,
        transaction_id=transaction.id,
        payment_date=transaction.created,
        amount=amount,
        balance_after=balance_after,
        payment_type=classify_payment(amount, balance_after, debt.minimum_payment),
        is_automatic=MatchType(match.match_type) == MatchType.AUTOMATIC,
    )


async def get_history_entry(
    db: AsyncSession,
    debt_id: UUID,
    transaction_id: str,
) -> DebtPaymentHistory | None:
    result = await db.execute(
        select(DebtPaymentHistory)
        .where(DebtPaymentHistory.debt_id == debt_id)
        .where(DebtPaymentHistory.transaction_id == transaction_id)
    )
    return result.scalar_one_or_none()


async def list_payment_history(db: AsyncSession, debt_id: UUID) -> list[DebtPaymentHistory]:
    """Payment history of a debt, newest first."""
    result = await db.execute(
        select(DebtPaymentHistory)
        .where(DebtPaymentHistory.debt_id == debt_id)
        .order_by(DebtPaymentHistory.payment_date.desc())
    )
    return list(result.scalars())


async def apply_confirmed_match(
    db: AsyncSession,
    match: DebtTransactionMatch,
) -> DebtPaymentHistory | None:
    """Record the payment behind a confirmed match and move the debt's stored balance.

    Applying the same match twice is a no-op that returns the existing entry.
    Returns None when the match is not confirmed or its transaction is not an
    outgoing payment.
    """
    if match.match_status != MatchStatus.CONFIRMED:
        return None

    existing = await get_history_entry(db, match.debt_id, match.transaction_id)
    if existing:
        logger.info(
            "Payment already recorded for match",
            debt_id=str(match.debt_id),
            transaction_id=match.transaction_id,
        )
        return existing

    debt = await db.get(Debt, match.debt_id)
    transaction = await db.get(Transaction, match.transaction_id)
    if debt is None or transaction is None:
        raise ValueError("Match references a missing debt or transaction")
    if transaction.amount >= 0:
        logger.warning(
            "Confirmed match is not an outgoing payment - no history recorded",
            debt_id=str(debt.id),
            transaction_id=transaction.id,
        )
        return None

    before = await get_debt_balance(db, debt, exclude_transaction_id=transaction.id)
    entry = build_entry(match, debt, transaction, before.current_balance)
    db.add(entry)

    debt.current_balance = entry.balance_after
    debt.status = DebtStatus.PAID_OFF if entry.balance_after <= 0 else DebtStatus.ACTIVE
    await db.flush()

    logger.info(
        "Debt payment recorded",
        debt_id=str(debt.id),
        transaction_id=transaction.id,
        amount=str(entry.amount),
        balance_after=str(entry.balance_after),
        payment_type=entry.payment_type.value,
    )
    return entry
