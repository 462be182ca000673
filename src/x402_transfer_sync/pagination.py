"""Pagination engines that exhaustively cover a time range.

Indexers cap page size and expose no cursor, so coverage of [since, now)
comes from one of two static strategies:

- OffsetPaginator: same window every request, increasing offset, stop on the
  first short page.
- TimeWindowPaginator: consecutive fixed-size windows, one request each,
  oldest first. A window that fills the page may have been truncated; that is
  reported as a saturation warning, never retried.

Pages are fetched strictly sequentially because each result decides whether
another request is needed.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from x402_transfer_sync.models import PaginationStrategy, TransferEvent

if TYPE_CHECKING:
    from x402_transfer_sync.jobs import ChainSyncConfig

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(days=3)

# (start, end, page_size, offset) -> transfers
PageFetcher = Callable[[datetime, datetime, int, int | None], Awaitable[list[TransferEvent]]]


@dataclass(frozen=True)
class SaturatedWindow:
    """A window whose result count reached the page size."""

    start: datetime
    end: datetime
    count: int


class Paginator(ABC):
    """Drives a page fetcher across [since, now)."""

    strategy: PaginationStrategy

    def __init__(self, page_size: int) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        self.page_size = page_size
        self.requests_made = 0

    @abstractmethod
    def pages(
        self, fetch_page: PageFetcher, since: datetime, now: datetime
    ) -> AsyncIterator[list[TransferEvent]]:
        """Yield pages of transfers, one per request, in request order."""

    async def fetch_all(
        self, fetch_page: PageFetcher, since: datetime, now: datetime
    ) -> list[TransferEvent]:
        transfers: list[TransferEvent] = []
        async for page in self.pages(fetch_page, since, now):
            transfers.extend(page)
        return transfers


class OffsetPaginator(Paginator):
    """Limit/offset pagination over a fixed [since, now) window.

    Correctness relies on the provider returning a stable ordering across
    repeated calls. Data the indexer is still ingesting for the live tail is
    best-effort: it may shift between pages and is re-covered on the next run.
    """

    strategy = PaginationStrategy.OFFSET

    async def pages(
        self, fetch_page: PageFetcher, since: datetime, now: datetime
    ) -> AsyncIterator[list[TransferEvent]]:
        offset = 0
        while True:
            page = await fetch_page(since, now, self.page_size, offset)
            self.requests_made += 1
            logger.debug("Offset page: offset=%d size=%d", offset, len(page))
            yield page
            if len(page) < self.page_size:
                return
            offset += self.page_size


class TimeWindowPaginator(Paginator):
    """One bounded query per fixed-size window, oldest window first."""

    strategy = PaginationStrategy.TIME_WINDOW

    def __init__(self, page_size: int, window: timedelta = DEFAULT_WINDOW) -> None:
        super().__init__(page_size)
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self.window = window
        self.saturated_windows: list[SaturatedWindow] = []

    def windows(self, since: datetime, now: datetime) -> list[tuple[datetime, datetime]]:
        """Partition [since, now) into consecutive windows with no gaps or overlaps."""
        if now <= since:
            return []
        count = math.ceil((now - since) / self.window)
        return [
            (since + i * self.window, min(since + (i + 1) * self.window, now))
            for i in range(count)
        ]

    async def pages(
        self, fetch_page: PageFetcher, since: datetime, now: datetime
    ) -> AsyncIterator[list[TransferEvent]]:
        for start, end in self.windows(since, now):
            page = await fetch_page(start, end, self.page_size, None)
            self.requests_made += 1
            if len(page) >= self.page_size:
                self.saturated_windows.append(SaturatedWindow(start=start, end=end, count=len(page)))
                logger.warning(
                    "Window saturated, transfers may be truncated: start=%s end=%s count=%d page_size=%d. "
                    "Shrink the window to recover them.",
                    start.isoformat(),
                    end.isoformat(),
                    len(page),
                    self.page_size,
                )
            else:
                logger.debug(
                    "Window fetched: start=%s end=%s count=%d",
                    start.isoformat(),
                    end.isoformat(),
                    len(page),
                )
            yield page


def build_paginator(job: ChainSyncConfig) -> Paginator:
    """Create a fresh paginator for one facilitator stream of a job."""
    if job.pagination == PaginationStrategy.OFFSET:
        if not job.query.supports_offset:
            raise ValueError(f"Provider query for {job.job_id} does not support offset pagination")
        return OffsetPaginator(job.page_size)
    return TimeWindowPaginator(job.page_size, job.window)
