"""Match lifecycle: persist candidates and move matches through review.

States are ``pending -> confirmed`` and ``pending -> rejected``. Confirmed and
rejected are terminal. At most one match exists per (transaction, debt) pair; the
existence check runs immediately before each insert and the unique constraint
catches any writer that slips in between.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.config import settings
from debt_tracker.logger import get_logger
from debt_tracker.models import (
    Debt,
    DebtPaymentHistory,
    DebtTransactionMatch,
    MatchStatus,
    MatchType,
    Transaction,
)
from debt_tracker.services.errors import DuplicateMatchError, NotFoundError
from debt_tracker.services.match_generator import MatchCandidate
from debt_tracker.services.payment_history import apply_confirmed_match

logger = get_logger(__name__)


@dataclass
class RecordOutcome:
    """Result of recording one candidate."""

    match: DebtTransactionMatch | None
    created: bool
    auto_confirmed: bool = False
    payment: DebtPaymentHistory | None = None


@dataclass
class ReviewResult:
    """Result of a confirm/reject request.

    ``applied`` is False when the match had already left ``pending``.
    """

    match: DebtTransactionMatch
    applied: bool
    payment: DebtPaymentHistory | None = None


async def get_existing_match(
    db: AsyncSession,
    transaction_id: str,
    debt_id: UUID,
) -> DebtTransactionMatch | None:
    result = await db.execute(
        select(DebtTransactionMatch)
        .where(DebtTransactionMatch.transaction_id == transaction_id)
        .where(DebtTransactionMatch.debt_id == debt_id)
    )
    return result.scalar_one_or_none()


async def record_candidate(db: AsyncSession, candidate: MatchCandidate) -> RecordOutcome:
    """Persist an automatic candidate unless its pair is already matched.

    Candidates at or above the auto-confirm threshold are stored confirmed and
    their payment is applied straight away; the rest wait in ``pending``.

    The session must be dedicated to this candidate: a lost insert race rolls it
    back.
    """
    existing = await get_existing_match(db, candidate.transaction_id, candidate.debt_id)
    if existing:
        logger.debug(
            "Match already recorded",
            transaction_id=candidate.transaction_id,
            debt_id=str(candidate.debt_id),
            status=existing.match_status.value,
        )
        return RecordOutcome(match=existing, created=False)

    auto_confirm = candidate.confidence >= settings.auto_confirm_threshold
    match = DebtTransactionMatch(
        transaction_id=candidate.transaction_id,
        debt_id=candidate.debt_id,
        rule_id=candidate.rule_id,
        match_confidence=candidate.confidence,
        match_status=MatchStatus.CONFIRMED if auto_confirm else MatchStatus.PENDING,
        match_type=MatchType.AUTOMATIC,
        matched_field=candidate.matched_field.value,
        matched_value=candidate.matched_value,
    )
    db.add(match)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info(
            "Concurrent writer recorded match first",
            transaction_id=candidate.transaction_id,
            debt_id=str(candidate.debt_id),
        )
        existing = await get_existing_match(db, candidate.transaction_id, candidate.debt_id)
        return RecordOutcome(match=existing, created=False)

    logger.info(
        "Debt match recorded",
        match_id=str(match.id),
        transaction_id=candidate.transaction_id,
        debt_id=str(candidate.debt_id),
        confidence=candidate.confidence,
        status=match.match_status.value,
    )

    payment = None
    if auto_confirm:
        payment = await apply_confirmed_match(db, match)
    return RecordOutcome(match=match, created=True, auto_confirmed=auto_confirm, payment=payment)


async def get_match(db: AsyncSession, match_id: UUID) -> DebtTransactionMatch:
    result = await db.execute(
        select(DebtTransactionMatch).where(DebtTransactionMatch.id == match_id).with_for_update()
    )
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError("Match")
    return match


async def confirm_match(db: AsyncSession, match_id: UUID) -> ReviewResult:
    """Confirm a pending match and apply its payment.

    Confirming a match that is already confirmed or rejected changes nothing.
    """
    match = await get_match(db, match_id)
    if match.match_status != MatchStatus.PENDING:
        logger.info(
            "Match already reviewed - confirm ignored",
            match_id=str(match_id),
            status=match.match_status.value,
        )
        return ReviewResult(match=match, applied=False)

    match.match_status = MatchStatus.CONFIRMED
    match.reviewed_at = datetime.now(UTC)
    await db.flush()

    payment = await apply_confirmed_match(db, match)
    logger.info("Match confirmed", match_id=str(match_id), debt_id=str(match.debt_id))
    return ReviewResult(match=match, applied=True, payment=payment)


async def reject_match(db: AsyncSession, match_id: UUID) -> ReviewResult:
    """Reject a pending match. Rejection has no balance effect."""
    match = await get_match(db, match_id)
    if match.match_status != MatchStatus.PENDING:
        logger.info(
            "Match already reviewed - reject ignored",
            match_id=str(match_id),
            status=match.match_status.value,
        )
        return ReviewResult(match=match, applied=False)

    match.match_status = MatchStatus.REJECTED
    match.reviewed_at = datetime.now(UTC)
    await db.flush()

    logger.info("Match rejected", match_id=str(match_id), debt_id=str(match.debt_id))
    return ReviewResult(match=match, applied=True)


async def create_manual_match(
    db: AsyncSession,
    *,
    transaction_id: str,
    debt_id: UUID,
) -> ReviewResult:
    """Pair a transaction with a debt by hand; the match is confirmed immediately.

    Raises:
        NotFoundError: If the transaction or debt does not exist
        DuplicateMatchError: If the pair already has a match in any status
        ValueError: If the transaction is not an outgoing payment
    """
    transaction = await db.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction")
    if await db.get(Debt, debt_id) is None:
        raise NotFoundError("Debt")
    if transaction.amount >= 0:
        raise ValueError("Only outgoing transactions can be matched to a debt")

    if await get_existing_match(db, transaction_id, debt_id):
        raise DuplicateMatchError("Transaction is already matched to this debt")

    match = DebtTransactionMatch(
        transaction_id=transaction_id,
        debt_id=debt_id,
        rule_id=None,
        match_confidence=100,
        match_status=MatchStatus.CONFIRMED,
        match_type=MatchType.MANUAL,
        reviewed_at=datetime.now(UTC),
    )
    db.add(match)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateMatchError("Transaction is already matched to this debt") from exc

    payment = await apply_confirmed_match(db, match)
    logger.info(
        "Manual match created",
        match_id=str(match.id),
        transaction_id=transaction_id,
        debt_id=str(debt_id),
    )
    return ReviewResult(match=match, applied=True, payment=payment)


async def get_pending_matches(
    db: AsyncSession,
    debt_id: UUID,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[DebtTransactionMatch]:
    """Pending matches for a debt, most confident first."""
    result = await db.execute(
        select(DebtTransactionMatch)
        .where(DebtTransactionMatch.debt_id == debt_id)
        .where(DebtTransactionMatch.match_status == MatchStatus.PENDING)
        .order_by(DebtTransactionMatch.match_confidence.desc(), DebtTransactionMatch.created_at)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars())
