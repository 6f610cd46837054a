"""Debt management service."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.logger import get_logger
from debt_tracker.models import Debt, DebtPayment, DebtStatus
from debt_tracker.schemas.debt import DebtCreate, ManualPaymentCreate
from debt_tracker.services.errors import NotFoundError
from debt_tracker.services.rules import ensure_default_rules

logger = get_logger(__name__)


async def create_debt(db: AsyncSession, debt_data: DebtCreate) -> Debt:
    """Create an active debt and bootstrap its default matching rules."""
    current = debt_data.current_balance
    if current is None:
        current = debt_data.original_amount
    debt = Debt(
        name=debt_data.name,
        description=debt_data.description,
        creditor=debt_data.creditor.strip(),
        original_amount=debt_data.original_amount,
        current_balance=current,
        interest_rate=debt_data.interest_rate,
        minimum_payment=debt_data.minimum_payment,
        priority=debt_data.priority,
        status=DebtStatus.PAID_OFF if current <= 0 else DebtStatus.ACTIVE,
    )
    db.add(debt)
    await db.flush()

    rules = await ensure_default_rules(db, debt)
    logger.info("Debt created", debt_id=str(debt.id), creditor=debt.creditor, default_rules=len(rules))
    return debt


async def get_debt(db: AsyncSession, debt_id: UUID) -> Debt:
    """Raises NotFoundError if the debt does not exist."""
    debt = await db.get(Debt, debt_id)
    if debt is None:
        raise NotFoundError("Debt")
    return debt


async def list_debts(db: AsyncSession, *, status: DebtStatus | None = None) -> list[Debt]:
    query = select(Debt).order_by(Debt.created_at)
    if status is not None:
        query = query.where(Debt.status == status)
    result = await db.execute(query)
    return list(result.scalars())


async def record_manual_payment(
    db: AsyncSession,
    debt_id: UUID,
    payment_data: ManualPaymentCreate,
) -> DebtPayment:
    """Record a hand-entered payment and reduce the stored balance by its principal."""
    debt = await get_debt(db, debt_id)

    principal = payment_data.principal
    if principal is None:
        principal = max(Decimal("0"), payment_data.amount - payment_data.interest)

    payment = DebtPayment(
        debt_id=debt.id,
        amount=payment_data.amount,
        principal=principal,
        interest=payment_data.interest,
        payment_date=payment_data.payment_date or datetime.now(UTC),
        notes=payment_data.notes,
    )
    db.add(payment)

    debt.current_balance = max(Decimal("0"), debt.current_balance - principal)
    debt.status = DebtStatus.PAID_OFF if debt.current_balance <= 0 else DebtStatus.ACTIVE
    await db.flush()

    logger.info(
        "Manual debt payment recorded",
        debt_id=str(debt.id),
        principal=str(principal),
        balance=str(debt.current_balance),
    )
    return payment
