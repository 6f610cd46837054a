"""Transaction import: upsert bank feed records by provider id."""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.logger import get_logger
from debt_tracker.models import Transaction
from debt_tracker.schemas.transaction import TransactionImport

logger = get_logger(__name__)


@dataclass
class ImportResult:
    created: int = 0
    updated: int = 0


async def import_transactions(db: AsyncSession, items: list[TransactionImport]) -> ImportResult:
    """Insert new transactions and refresh ones already stored under the same id."""
    result = ImportResult()
    ids = [item.id for item in items]
    existing = {
        txn.id: txn for txn in (await db.execute(select(Transaction).where(Transaction.id.in_(ids)))).scalars()
    }

    for item in items:
        values = item.model_dump()
        txn = existing.get(item.id)
        if txn is None:
            txn = Transaction(**values)
            db.add(txn)
            existing[item.id] = txn
            result.created += 1
        else:
            for key, value in values.items():
                setattr(txn, key, value)
            result.updated += 1

    await db.flush()
    logger.info("Transactions imported", created=result.created, updated=result.updated)
    return result


async def list_transactions(
    db: AsyncSession,
    *,
    limit: int = 50,
    offset: int = 0,
    outgoing_only: bool = False,
) -> list[Transaction]:
    query = select(Transaction).order_by(Transaction.created.desc()).limit(limit).offset(offset)
    if outgoing_only:
        query = query.where(Transaction.amount < 0)
    result = await db.execute(query)
    return list(result.scalars())
