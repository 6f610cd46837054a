"""Matching rules, match review and scan API router."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from debt_tracker.deps import DbSession, Scheduler
from debt_tracker.schemas import (
    ManualMatchCreate,
    MatchListResponse,
    MatchResponse,
    ReviewResponse,
    RuleCreate,
    RuleListResponse,
    RuleResponse,
    RuleToggle,
    ScanRequest,
    ScanSummaryResponse,
)
from debt_tracker.services import (
    DuplicateMatchError,
    NotFoundError,
    ReviewResult,
    RuleValidationError,
    confirm_match,
    create_manual_match,
    get_pending_matches,
    reject_match,
)
from debt_tracker.services import debts as debt_service
from debt_tracker.services import rules as rule_service
from debt_tracker.utils.exceptions import raise_bad_request, raise_conflict, raise_not_found

router = APIRouter(prefix="/matching", tags=["matching"])


def _review_response(result: ReviewResult) -> ReviewResponse:
    return ReviewResponse(match=MatchResponse.model_validate(result.match), applied=result.applied)


# --- Rules ---


@router.get("/debts/{debt_id}/rules", response_model=RuleListResponse)
async def list_rules(debt_id: UUID, db: DbSession) -> RuleListResponse:
    try:
        await debt_service.get_debt(db, debt_id)
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)
    rules = await rule_service.list_rules(db, debt_id)
    items = [RuleResponse.model_validate(rule) for rule in rules]
    return RuleListResponse(items=items, total=len(items))


@router.post("/debts/{debt_id}/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def add_rule(debt_id: UUID, rule_data: RuleCreate, db: DbSession) -> RuleResponse:
    try:
        rule = await rule_service.add_rule(
            db,
            debt_id,
            rule_type=rule_data.type,
            field=rule_data.field,
            value=rule_data.value,
            confidence_threshold=rule_data.confidence_threshold,
            enabled=rule_data.enabled,
        )
    except NotFoundError as exc:
        raise_not_found("Debt", cause=exc)
    except RuleValidationError as exc:
        raise_bad_request(str(exc), cause=exc)
    await db.commit()
    return RuleResponse.model_validate(rule)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def toggle_rule(rule_id: UUID, toggle: RuleToggle, db: DbSession) -> RuleResponse:
    try:
        rule = await rule_service.toggle_rule(db, rule_id, toggle.enabled)
    except NotFoundError as exc:
        raise_not_found("Rule", cause=exc)
    await db.commit()
    return RuleResponse.model_validate(rule)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(rule_id: UUID, db: DbSession) -> None:
    try:
        await rule_service.delete_rule(db, rule_id)
    except NotFoundError as exc:
        raise_not_found("Rule", cause=exc)
    await db.commit()


# --- Matches ---


@router.get("/debts/{debt_id}/pending", response_model=MatchListResponse)
async def list_pending(
    debt_id: UUID,
    db: DbSession,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> MatchListResponse:
    matches = await get_pending_matches(db, debt_id, limit=limit, offset=offset)
    items = [MatchResponse.model_validate(match) for match in matches]
    return MatchListResponse(items=items, total=len(items))


@router.post("/matches/{match_id}/confirm", response_model=ReviewResponse)
async def confirm(match_id: UUID, db: DbSession) -> ReviewResponse:
    """Confirm a pending match; already reviewed matches are reported with ``applied=false``."""
    try:
        result = await confirm_match(db, match_id)
    except NotFoundError as exc:
        raise_not_found("Match", cause=exc)
    await db.commit()
    return _review_response(result)


@router.post("/matches/{match_id}/reject", response_model=ReviewResponse)
async def reject(match_id: UUID, db: DbSession) -> ReviewResponse:
    try:
        result = await reject_match(db, match_id)
    except NotFoundError as exc:
        raise_not_found("Match", cause=exc)
    await db.commit()
    return _review_response(result)


@router.post("/matches/manual", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def manual_match(payload: ManualMatchCreate, db: DbSession) -> ReviewResponse:
    try:
        result = await create_manual_match(db, transaction_id=payload.transaction_id, debt_id=payload.debt_id)
    except NotFoundError as exc:
        raise_not_found(exc.resource, cause=exc)
    except DuplicateMatchError as exc:
        raise_conflict(str(exc), cause=exc)
    except ValueError as exc:
        raise_bad_request(str(exc), cause=exc)
    await db.commit()
    return _review_response(result)


# --- Scans ---


@router.post("/scan", response_model=ScanSummaryResponse)
async def scan(payload: ScanRequest, scheduler: Scheduler) -> ScanSummaryResponse:
    """Run a matching pass over the latest ``count`` transactions or the last ``days`` days."""
    if payload.days is not None:
        summary = await scheduler.scan_window(payload.days)
    else:
        summary = await scheduler.scan_latest(payload.count)
    return ScanSummaryResponse.model_validate(summary)
