"""Pydantic schemas for imported bank transactions."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from debt_tracker.schemas.base import BaseResponse, ListResponse


class TransactionImport(BaseModel):
    """One transaction as delivered by the bank feed (amount in minor units)."""

    id: str = Field(..., min_length=1, max_length=64)
    account_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal
    currency: str = Field(default="GBP", min_length=3, max_length=3)
    description: str = ""
    merchant_name: str | None = None
    counterparty_name: str | None = None
    counterparty_preferred_name: str | None = None
    account_number: str | None = None
    created: datetime
    include_in_spending: bool = True


class TransactionImportRequest(BaseModel):
    transactions: list[TransactionImport] = Field(..., min_length=1)


class TransactionImportResponse(BaseModel):
    created: int
    updated: int


class TransactionResponse(BaseResponse):
    id: str
    account_id: str
    amount: Decimal
    currency: str
    description: str
    merchant_name: str | None
    counterparty_name: str | None
    counterparty_preferred_name: str | None
    account_number: str | None
    created: datetime
    include_in_spending: bool


TransactionListResponse = ListResponse[TransactionResponse]
