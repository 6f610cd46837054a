"""Transaction import API router."""

from fastapi import APIRouter, Query, status

from debt_tracker.deps import DbSession, Scheduler
from debt_tracker.schemas import (
    TransactionImportRequest,
    TransactionImportResponse,
    TransactionListResponse,
    TransactionResponse,
)
from debt_tracker.services import transactions as transaction_service

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("/import", response_model=TransactionImportResponse, status_code=status.HTTP_201_CREATED)
async def import_transactions(
    payload: TransactionImportRequest,
    db: DbSession,
    scheduler: Scheduler,
) -> TransactionImportResponse:
    """Upsert bank feed transactions and schedule a debounced matching pass."""
    result = await transaction_service.import_transactions(db, payload.transactions)
    await db.commit()
    scheduler.notify_data_changed()
    return TransactionImportResponse(created=result.created, updated=result.updated)


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    db: DbSession,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    outgoing_only: bool = False,
) -> TransactionListResponse:
    transactions = await transaction_service.list_transactions(
        db, limit=limit, offset=offset, outgoing_only=outgoing_only
    )
    items = [TransactionResponse.model_validate(txn) for txn in transactions]
    return TransactionListResponse(items=items, total=len(items))
