"""Ingestion scheduler: run the matching pipeline over batches of transactions.

Entry points:
- ``scan_latest(count)``: the newest ``count`` transactions
- ``scan_window(days)``: transactions created in the last ``days`` days
- ``notify_data_changed()``: (re)arm the debounced automatic pass

Passes may overlap. Each candidate is written in its own session, so a failure is
confined to that candidate and the pass carries on.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from debt_tracker.config import settings
from debt_tracker.database import get_session_maker
from debt_tracker.logger import async_log_timing, get_logger, log_exception
from debt_tracker.models import (
    CreditorMatchingRule,
    Debt,
    DebtStatus,
    DebtTransactionMatch,
    Transaction,
)
from debt_tracker.services.match_generator import find_matches
from debt_tracker.services.match_lifecycle import record_candidate
from debt_tracker.services.rules import ensure_default_rules

logger = get_logger(__name__)


@dataclass
class ScanSummary:
    """Counts reported for one scan pass."""

    mode: str
    processed: int = 0
    skipped: int = 0
    matched: int = 0
    auto_confirmed: int = 0
    pending: int = 0
    duplicates: int = 0
    failed: int = 0
    duration_ms: float = 0.0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class DebtMatchingScheduler:
    """Runs scan passes and the debounced automatic pass."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        *,
        debounce_seconds: float | None = None,
    ) -> None:
        self._session_maker = session_maker
        self.debounce_seconds = (
            settings.auto_scan_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self._timer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._watermark: datetime | None = None
        self.last_auto_summary: ScanSummary | None = None

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        return self._session_maker or get_session_maker()

    @property
    def watermark(self) -> datetime | None:
        """Creation time of the newest transaction the automatic pass has handled."""
        return self._watermark

    # ------------------------------------------------------------------
    # Scan entry points
    # ------------------------------------------------------------------

    async def scan_latest(self, count: int | None = None) -> ScanSummary:
        limit = count or settings.scan_latest_count
        async with self.session_maker() as session:
            result = await session.execute(
                select(Transaction.id).order_by(Transaction.created.desc()).limit(limit)
            )
            ids = list(result.scalars())
        return await self._run_pass("latest", ids)

    async def scan_window(self, days: int | None = None) -> ScanSummary:
        since = datetime.now(UTC) - timedelta(days=days or settings.scan_window_days)
        async with self.session_maker() as session:
            result = await session.execute(
                select(Transaction.id).where(Transaction.created >= since).order_by(Transaction.created)
            )
            ids = list(result.scalars())
        return await self._run_pass("window", ids)

    async def run_auto_scan(self) -> ScanSummary:
        """Process recent, not yet matched outgoing transactions past the watermark.

        Oldest first, so transactions left over by the batch limit stay beyond the
        watermark for the next pass.
        """
        since = datetime.now(UTC) - timedelta(hours=settings.auto_scan_recent_hours)
        query = (
            select(Transaction.id, Transaction.created)
            .where(Transaction.created >= since)
            .where(Transaction.amount < 0)
            .where(~exists().where(DebtTransactionMatch.transaction_id == Transaction.id))
            .order_by(Transaction.created)
            .limit(settings.auto_scan_max_transactions)
        )
        if self._watermark is not None:
            query = query.where(Transaction.created > self._watermark)

        async with self.session_maker() as session:
            rows = (await session.execute(query)).all()

        summary = await self._run_pass("auto", [row.id for row in rows])
        if rows:
            newest = max(_as_utc(row.created) for row in rows)
            if self._watermark is None or newest > self._watermark:
                self._watermark = newest
        self.last_auto_summary = summary
        return summary

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------

    def notify_data_changed(self) -> None:
        """Restart the debounce timer; the automatic pass runs once input settles.

        A pass that has already started is never cancelled.
        """
        if self._timer is not None:
            self._timer.cancel()
        task = asyncio.get_running_loop().create_task(self._debounced_auto_scan())
        self._timer = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _debounced_auto_scan(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if self._timer is asyncio.current_task():
            self._timer = None
        try:
            await self.run_auto_scan()
        except Exception as exc:
            log_exception(logger, exc, "Debounced auto-scan failed")

    async def wait_idle(self) -> None:
        """Wait for the armed timer and any automatic pass in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Drop an armed timer and let in-flight passes finish."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        await self.wait_idle()

    # ------------------------------------------------------------------
    # Pass internals
    # ------------------------------------------------------------------

    async def _load_matching_context(self) -> tuple[list[Debt], list[CreditorMatchingRule]]:
        async with self.session_maker() as session:
            debts = list(
                (await session.execute(select(Debt).where(Debt.status == DebtStatus.ACTIVE))).scalars()
            )

        for debt in debts:
            if not debt.creditor:
                continue
            try:
                async with self.session_maker() as session:
                    await ensure_default_rules(session, debt)
                    await session.commit()
            except Exception as exc:
                log_exception(logger, exc, "Failed to bootstrap default rules", debt_id=str(debt.id))

        debt_ids = [debt.id for debt in debts]
        if not debt_ids:
            return debts, []
        async with self.session_maker() as session:
            rules = list(
                (
                    await session.execute(
                        select(CreditorMatchingRule)
                        .where(CreditorMatchingRule.debt_id.in_(debt_ids))
                        .where(CreditorMatchingRule.enabled.is_(True))
                    )
                ).scalars()
            )
        return debts, rules

    async def _run_pass(self, mode: str, transaction_ids: list[str]) -> ScanSummary:
        summary = ScanSummary(mode=mode)
        async with async_log_timing("debt_scan", logger=logger, mode=mode) as timing:
            debts, rules = await self._load_matching_context()
            for transaction_id in transaction_ids:
                await self._process_transaction(transaction_id, debts, rules, summary)
            timing.update({k: v for k, v in asdict(summary).items() if k not in ("mode", "duration_ms")})
        summary.duration_ms = timing["duration_ms"]
        return summary

    async def _process_transaction(
        self,
        transaction_id: str,
        debts: list[Debt],
        rules: list[CreditorMatchingRule],
        summary: ScanSummary,
    ) -> None:
        try:
            async with self.session_maker() as session:
                transaction = await session.get(Transaction, transaction_id)
        except Exception as exc:
            summary.failed += 1
            log_exception(logger, exc, "Failed to load transaction", transaction_id=transaction_id)
            return

        if transaction is None or transaction.amount >= 0:
            summary.skipped += 1
            return

        summary.processed += 1
        for candidate in find_matches(transaction, debts, rules):
            try:
                async with self.session_maker() as session:
                    outcome = await record_candidate(session, candidate)
                    await session.commit()
            except Exception as exc:
                summary.failed += 1
                log_exception(
                    logger,
                    exc,
                    "Failed to record debt match",
                    transaction_id=transaction_id,
                    debt_id=str(candidate.debt_id),
                )
                continue

            if not outcome.created:
                summary.duplicates += 1
            elif outcome.auto_confirmed:
                summary.matched += 1
                summary.auto_confirmed += 1
            else:
                summary.matched += 1
                summary.pending += 1
