"""Pydantic schemas for matching rules, matches and scans."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from debt_tracker.models import MatchStatus, MatchType, RuleField, RuleType
from debt_tracker.schemas.base import BaseResponse, ListResponse
from debt_tracker.schemas.transaction import TransactionResponse


class RuleCreate(BaseModel):
    type: RuleType
    field: RuleField
    value: str = Field(..., min_length=1)
    confidence_threshold: int = Field(default=85, ge=0, le=100)
    enabled: bool = True


class RuleToggle(BaseModel):
    enabled: bool


class RuleResponse(BaseResponse):
    id: UUID
    debt_id: UUID
    type: RuleType
    field: RuleField
    value: str
    confidence_threshold: int
    enabled: bool
    created_at: datetime


RuleListResponse = ListResponse[RuleResponse]


class MatchResponse(BaseResponse):
    id: UUID
    transaction_id: str
    debt_id: UUID
    rule_id: UUID | None
    match_confidence: int
    match_status: MatchStatus
    match_type: MatchType
    matched_field: str | None
    matched_value: str | None
    reviewed_at: datetime | None
    created_at: datetime


MatchListResponse = ListResponse[MatchResponse]


class ReviewResponse(BaseModel):
    """Outcome of confirm/reject; ``applied`` is false when the match was already reviewed."""

    match: MatchResponse
    applied: bool


class ManualMatchCreate(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    debt_id: UUID


class ScanRequest(BaseModel):
    """Scan either the latest ``count`` transactions or the last ``days`` days."""

    count: int | None = Field(default=None, ge=1, le=1000)
    days: int | None = Field(default=None, ge=1, le=365)

    @model_validator(mode="after")
    def _one_mode(self) -> "ScanRequest":
        if self.count is not None and self.days is not None:
            raise ValueError("Provide either count or days, not both")
        return self


class ScanSummaryResponse(BaseResponse):
    mode: str
    processed: int
    skipped: int
    matched: int
    auto_confirmed: int
    pending: int
    duplicates: int
    failed: int
    duration_ms: float


class PotentialPaymentResponse(BaseModel):
    transaction: TransactionResponse
    confidence: int
    rule_id: UUID | None
    matched_field: RuleField
    matched_value: str


PotentialPaymentListResponse = ListResponse[PotentialPaymentResponse]
