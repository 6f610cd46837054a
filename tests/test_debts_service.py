"""Tests for debt creation and manual payments."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from debt_tracker.models import DebtStatus
from debt_tracker.schemas import DebtCreate, ManualPaymentCreate
from debt_tracker.services.balance_reconciliation import get_debt_balance
from debt_tracker.services.debts import create_debt, get_debt, list_debts, record_manual_payment
from debt_tracker.services.errors import NotFoundError
from debt_tracker.services.rules import list_rules


@pytest.mark.asyncio
async def test_create_debt_bootstraps_rules(db):
    debt = await create_debt(
        db,
        DebtCreate(name="Loan", creditor="  Acme Bank ", original_amount=Decimal("50000")),
    )

    assert debt.creditor == "Acme Bank"
    assert debt.current_balance == Decimal("50000")
    assert debt.status == DebtStatus.ACTIVE
    assert len(await list_rules(db, debt.id)) == 3


@pytest.mark.asyncio
async def test_create_debt_without_creditor_has_no_rules(db):
    debt = await create_debt(db, DebtCreate(name="Family loan", original_amount=Decimal("1000")))

    assert await list_rules(db, debt.id) == []


@pytest.mark.asyncio
async def test_manual_payment_reduces_stored_and_canonical_balance(db):
    debt = await create_debt(db, DebtCreate(name="Loan", creditor="Acme", original_amount=Decimal("1000")))

    payment = await record_manual_payment(
        db,
        debt.id,
        ManualPaymentCreate(amount=Decimal("300"), interest=Decimal("50"), payment_date=datetime.now(UTC)),
    )

    assert payment.principal == Decimal("250")
    assert debt.current_balance == Decimal("750")
    assert (await get_debt_balance(db, debt)).current_balance == Decimal("750")


@pytest.mark.asyncio
async def test_manual_payment_clearing_debt_marks_paid_off(db):
    debt = await create_debt(db, DebtCreate(name="Loan", original_amount=Decimal("100")))

    await record_manual_payment(db, debt.id, ManualPaymentCreate(amount=Decimal("150")))

    assert debt.current_balance == Decimal("0")
    assert debt.status == DebtStatus.PAID_OFF
    assert [d.id for d in await list_debts(db, status=DebtStatus.PAID_OFF)] == [debt.id]


@pytest.mark.asyncio
async def test_unknown_debt_raises(db):
    with pytest.raises(NotFoundError):
        await get_debt(db, uuid4())
    with pytest.raises(NotFoundError):
        await record_manual_payment(db, uuid4(), ManualPaymentCreate(amount=Decimal("1")))
