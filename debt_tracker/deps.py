"""Common FastAPI dependencies for consistent type annotations.

Usage:
    from debt_tracker.deps import DbSession, Scheduler

    async def my_endpoint(db: DbSession, scheduler: Scheduler):
        ...
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.database import get_db
from debt_tracker.services.ingestion import DebtMatchingScheduler


def get_scheduler(request: Request) -> DebtMatchingScheduler:
    """The scheduler built by the application lifespan."""
    return request.app.state.scheduler


DbSession = Annotated[AsyncSession, Depends(get_db)]
Scheduler = Annotated[DebtMatchingScheduler, Depends(get_scheduler)]

__all__ = ["DbSession", "Scheduler", "get_scheduler"]
