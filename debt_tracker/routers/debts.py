"""Debt management and balance API router."""

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Query, status

from debt_tracker.deps import DbSession
from debt_tracker.logger import get_logger
from debt_tracker.models import DebtStatus
from debt_tracker.schemas import (
    DebtBalanceResponse,
    DebtCreate,
    DebtListResponse,
    DebtResponse,
    DebtSummaryResponse,
    ManualPaymentCreate,
    ManualPaymentResponse,
    PaymentHistoryListResponse,
    PaymentHistoryResponse,
    PaymentVelocityResponse,
    PotentialPaymentListResponse,
    PotentialPaymentResponse,
    SyncBalancesResponse,
    TransactionResponse,
)
from debt_tracker.services import (
    NotFoundError,
    get_debt_balance,
    get_debt_summary,
    get_payment_velocity,
    get_potential_payments,
    list_payment_history,
    should_update_debt_balance,
    sync_debt_balances,
)
from debt_tracker.services import debts as debt_service
from debt_tracker.utils.exceptions import raise_not_found

router = APIRouter(prefix="/debts", tags=["debts"])
logger = get_logger(__name__)


@router.post("", response_model=DebtResponse, status_code=status.HTTP_201_CREATED)
async def create_debt(debt_data: DebtCreate, db: DbSession) -> DebtResponse:
    """Create a debt; default matching rules are derived from its creditor."""
    debt = await debt_service.create_debt(db, debt_data)
    await db.commit()
    return DebtResponse.model_validate(debt)


@router.get("", response_model=DebtListResponse)
async def list_debts(db: DbSession, debt_status: DebtStatus | None = Query(None, alias="status")) -> DebtListResponse:
    debts = await debt_service.list_debts(db, status=debt_status)
    items = [DebtResponse.model_validate(debt) for debt in debts]
    return DebtListResponse(items=items, total=len(items))


@router.get("/summary", response_model=DebtSummaryResponse)
async def debt_summary(db: DbSession) -> DebtSummaryResponse:
    """Canonical totals across all debts."""
    summary = await get_debt_summary(db)
    return DebtSummaryResponse(
        total_debts=summary.total_debts,
        active_debts=summary.active_debts,
        paid_off_debts=summary.paid_off_debts,
        total_original=summary.total_original,
        total_current=summary.total_current,
        total_paid=summary.total_paid,
        overall_progress=summary.overall_progress,
        balances=[DebtBalanceResponse(**asdict(info)) for info in summary.balances],
    )


@router.post("/sync-balances", response_model=SyncBalancesResponse)
async def sync_balances(db: DbSession) -> SyncBalancesResponse:
    """Repair stored balances that drifted from their canonical value."""
    result = await sync_debt_balances(db)
    await db.commit()
    return SyncBalancesResponse.model_validate(result)


@router.get("/{debt_id}", response_model=DebtResponse)
async def get_debt(debt_id: UUID, db: DbSession) -> DebtResponse:
    try:
        debt = await debt_service.get_debt(db, debt_id)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)
    return DebtResponse.model_validate(debt)


@router.post(
    "/{debt_id}/payments",
    response_model=ManualPaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(debt_id: UUID, payment_data: ManualPaymentCreate, db: DbSession) -> ManualPaymentResponse:
    """Record a manual payment."""
    try:
        payment = await debt_service.record_manual_payment(db, debt_id, payment_data)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)
    await db.commit()
    return ManualPaymentResponse.model_validate(payment)


@router.get("/{debt_id}/balance", response_model=DebtBalanceResponse)
async def get_balance(debt_id: UUID, db: DbSession) -> DebtBalanceResponse:
    """Canonical balance; ``needs_sync`` flags drift of the stored balance."""
    try:
        debt = await debt_service.get_debt(db, debt_id)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)

    info = await get_debt_balance(db, debt)
    needs_sync = should_update_debt_balance(debt, info)
    if needs_sync:
        logger.warning(
            "Debt balance drift detected",
            debt_id=str(debt.id),
            stored=str(debt.current_balance),
            canonical=str(info.current_balance),
        )
    return DebtBalanceResponse(**asdict(info), stored_balance=debt.current_balance, needs_sync=needs_sync)


@router.get("/{debt_id}/history", response_model=PaymentHistoryListResponse)
async def get_history(debt_id: UUID, db: DbSession) -> PaymentHistoryListResponse:
    try:
        await debt_service.get_debt(db, debt_id)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)
    entries = await list_payment_history(db, debt_id)
    items = [PaymentHistoryResponse.model_validate(entry) for entry in entries]
    return PaymentHistoryListResponse(items=items, total=len(items))


@router.get("/{debt_id}/velocity", response_model=PaymentVelocityResponse)
async def get_velocity(debt_id: UUID, db: DbSession) -> PaymentVelocityResponse:
    try:
        debt = await debt_service.get_debt(db, debt_id)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)
    velocity = await get_payment_velocity(db, debt)
    return PaymentVelocityResponse.model_validate(velocity)


@router.get("/{debt_id}/potential-payments", response_model=PotentialPaymentListResponse)
async def potential_payments(
    debt_id: UUID,
    db: DbSession,
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
) -> PotentialPaymentListResponse:
    """Unmatched outgoing transactions ranked by how well they fit the debt's rules."""
    try:
        debt = await debt_service.get_debt(db, debt_id)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)

    suggestions = await get_potential_payments(db, debt, days=days, limit=limit)
    items = [
        PotentialPaymentResponse(
            transaction=TransactionResponse.model_validate(item.transaction),
            confidence=item.confidence,
            rule_id=item.rule_id,
            matched_field=item.matched_field,
            matched_value=item.matched_value,
        )
        for item in suggestions
    ]
    return PotentialPaymentListResponse(items=items, total=len(items))
