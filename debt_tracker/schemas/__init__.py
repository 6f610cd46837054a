"""Pydantic schemas package."""

from debt_tracker.schemas.base import BaseResponse, ListResponse
from debt_tracker.schemas.debt import (
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
    SyncBalancesResponse,
)
from debt_tracker.schemas.matching import (
    ManualMatchCreate,
    MatchListResponse,
    MatchResponse,
    PotentialPaymentListResponse,
    PotentialPaymentResponse,
    ReviewResponse,
    RuleCreate,
    RuleListResponse,
    RuleResponse,
    RuleToggle,
    ScanRequest,
    ScanSummaryResponse,
)
from debt_tracker.schemas.transaction import (
    TransactionImport,
    TransactionImportRequest,
    TransactionImportResponse,
    TransactionListResponse,
    TransactionResponse,
)

__all__ = [
    "BaseResponse",
    "DebtBalanceResponse",
    "DebtCreate",
    "DebtListResponse",
    "DebtResponse",
    "DebtSummaryResponse",
    "ListResponse",
    "ManualMatchCreate",
    "ManualPaymentCreate",
    "ManualPaymentResponse",
    "MatchListResponse",
    "MatchResponse",
    "PaymentHistoryListResponse",
    "PaymentHistoryResponse",
    "PaymentVelocityResponse",
    "PotentialPaymentListResponse",
    "PotentialPaymentResponse",
    "ReviewResponse",
    "RuleCreate",
    "RuleListResponse",
    "RuleResponse",
    "RuleToggle",
    "ScanRequest",
    "ScanSummaryResponse",
    "SyncBalancesResponse",
    "TransactionImport",
    "TransactionImportRequest",
    "TransactionImportResponse",
    "TransactionListResponse",
    "TransactionResponse",
]
