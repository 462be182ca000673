"""Sync orchestrator driving one scheduled run of a (chain, provider) job.

For each enabled facilitator of the job's chain, sequentially:
1. resolve the watermark from storage
2. paginate [since, now) through the job's provider query
3. persist, either once at the end or page by page
4. log fetched / saved / skipped counts

Failures are not isolated per facilitator. The first error aborts the run
and propagates to the scheduler; the next run re-derives every watermark
from storage, so nothing beyond what was already committed is assumed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from x402_transfer_sync.client import IndexerClient
from x402_transfer_sync.errors import StorageError, SyncTimeoutError
from x402_transfer_sync.jobs import ChainSyncConfig
from x402_transfer_sync.models import FacilitatorConfig, TransferEvent
from x402_transfer_sync.pagination import SaturatedWindow, TimeWindowPaginator, build_paginator
from x402_transfer_sync.providers.base import QueryContext
from x402_transfer_sync.storage.repos import TransferEventRepository
from x402_transfer_sync.watermark import resolve_watermark

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ChainSyncConfig], IndexerClient]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class FacilitatorSyncResult:
    """Outcome of syncing one facilitator stream."""

    facilitator_id: str
    since: datetime
    until: datetime
    fetched: int = 0
    saved: int = 0
    requests: int = 0
    saturated_windows: list[SaturatedWindow] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        """Fetched transfers that were already stored."""
        return self.fetched - self.saved


@dataclass
class SyncRunResult:
    """Outcome of one job invocation."""

    job_id: str
    started_at: datetime
    skipped: bool = False
    facilitators: list[FacilitatorSyncResult] = field(default_factory=list)

    @property
    def total_fetched(self) -> int:
        return sum(r.fetched for r in self.facilitators)

    @property
    def total_saved(self) -> int:
        return sum(r.saved for r in self.facilitators)


class SyncOrchestrator:
    """Runs sync jobs against storage and indexer clients.

    Example:
        ```python
        db = DatabaseManager(settings.database.url)
        orchestrator = SyncOrchestrator(db.session_factory, client_factory)
        result = await orchestrator.run_with_budget(get_job("base-sync-transfers-bitquery"))
        ```
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client_factory: ClientFactory,
        *,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            session_factory: Factory for storage sessions.
            client_factory: Builds the indexer client for a job.
            clock: Source of the run's fixed `now`.
        """
        self._session_factory = session_factory
        self._client_factory = client_factory
        self._clock = clock

    async def run_with_budget(self, job: ChainSyncConfig) -> SyncRunResult:
        """Run a job, aborting it once its maximum duration is exceeded.

        Raises:
            SyncTimeoutError: If the run did not finish in time. Everything
                committed before the timeout stays committed.
        """
        try:
            return await asyncio.wait_for(self.run(job), timeout=job.max_duration_seconds)
        except TimeoutError as e:
            logger.error(
                "Sync run exceeded its budget: job=%s max_duration_seconds=%d",
                job.job_id,
                job.max_duration_seconds,
            )
            raise SyncTimeoutError(
                f"Job {job.job_id} exceeded {job.max_duration_seconds}s"
            ) from e

    async def run(self, job: ChainSyncConfig) -> SyncRunResult:
        """Run one invocation of a job across its facilitators."""
        now = self._clock()
        result = SyncRunResult(job_id=job.job_id, started_at=now)

        if not job.enabled:
            logger.info("Sync job disabled, skipping: job=%s", job.job_id)
            result.skipped = True
            return result

        facilitators = job.facilitators()
        logger.info(
            "Sync run starting: job=%s facilitators=%d now=%s",
            job.job_id,
            len(facilitators),
            now.isoformat(),
        )

        client = self._client_factory(job)
        try:
            for facilitator in facilitators:
                try:
                    outcome = await self._sync_facilitator(job, client, facilitator, now)
                except Exception:
                    logger.exception(
                        "Sync failed: job=%s chain=%s provider=%s facilitator=%s",
                        job.job_id,
                        job.chain.value,
                        job.provider.value,
                        facilitator.id,
                    )
                    raise
                result.facilitators.append(outcome)
        finally:
            await client.close()

        logger.info(
            "Sync run finished: job=%s fetched=%d saved=%d",
            job.job_id,
            result.total_fetched,
            result.total_saved,
        )
        return result

    async def _sync_facilitator(
        self,
        job: ChainSyncConfig,
        client: IndexerClient,
        facilitator: FacilitatorConfig,
        now: datetime,
    ) -> FacilitatorSyncResult:
        async with self._session_factory() as session:
            since = await resolve_watermark(
                TransferEventRepository(session),
                chain=job.chain,
                provider=job.provider,
                facilitator=facilitator,
                now=now,
                fallback_lookback=job.fallback_lookback,
            )

        outcome = FacilitatorSyncResult(facilitator_id=facilitator.id, since=since, until=now)
        logger.info(
            "Fetching transfers: job=%s facilitator=%s address=%s since=%s until=%s",
            job.job_id,
            facilitator.id,
            facilitator.address,
            since.isoformat(),
            now.isoformat(),
        )
        if since >= now:
            logger.info("Nothing to fetch: job=%s facilitator=%s", job.job_id, facilitator.id)
            return outcome

        context = QueryContext(chain=job.chain, provider=job.provider, facilitator=facilitator)
        paginator = build_paginator(job)

        async def fetch_page(
            start: datetime, end: datetime, page_size: int, offset: int | None
        ) -> list[TransferEvent]:
            return await client.fetch_page(
                job.query, context, start, end, page_size=page_size, offset=offset
            )

        if job.stream_to_storage:
            async for page in paginator.pages(fetch_page, since, now):
                outcome.fetched += len(page)
                outcome.saved += await self._persist(page)
        else:
            transfers = await paginator.fetch_all(fetch_page, since, now)
            outcome.fetched = len(transfers)
            outcome.saved = await self._persist(transfers)

        outcome.requests = paginator.requests_made
        if isinstance(paginator, TimeWindowPaginator):
            outcome.saturated_windows = list(paginator.saturated_windows)

        logger.info(
            "Facilitator synced: job=%s facilitator=%s fetched=%d saved=%d skipped=%d requests=%d saturated_windows=%d",
            job.job_id,
            facilitator.id,
            outcome.fetched,
            outcome.saved,
            outcome.skipped,
            outcome.requests,
            len(outcome.saturated_windows),
        )
        return outcome

    async def _persist(self, transfers: Sequence[TransferEvent]) -> int:
        if not transfers:
            return 0
        try:
            async with self._session_factory() as session, session.begin():
                return await TransferEventRepository(session).insert_many(transfers)
        except SQLAlchemyError as e:
            raise StorageError(f"Committing {len(transfers)} transfers failed") from e
