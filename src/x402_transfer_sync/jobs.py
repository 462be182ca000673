"""Static sync job table, one entry per (chain, provider) pairing.

The cron expression and maximum duration are consumed by the external
scheduler; `run_with_budget` enforces the duration on our side as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from x402_transfer_sync.facilitators import get_facilitators
from x402_transfer_sync.models import Chain, FacilitatorConfig, PaginationStrategy, Provider
from x402_transfer_sync.pagination import DEFAULT_WINDOW
from x402_transfer_sync.providers import (
    BigQuerySolanaTransfersQuery,
    BitqueryEvmTransfersQuery,
    BitquerySolanaTransfersQuery,
    ProviderQuery,
)
from x402_transfer_sync.providers.bitquery import BITQUERY_STREAMING_URL, BITQUERY_V1_URL


@dataclass(frozen=True)
class ChainSyncConfig:
    """Configuration of one scheduled sync job."""

    chain: Chain
    provider: Provider
    query: ProviderQuery
    cron: str
    max_duration_seconds: int
    pagination: PaginationStrategy
    page_size: int
    api_url: str | None = None  # None: derived from settings (BigQuery project)
    window: timedelta = DEFAULT_WINDOW
    fallback_lookback: timedelta | None = None
    enabled: bool = True
    stream_to_storage: bool = False

    def __post_init__(self) -> None:
        if self.query.provider != self.provider:
            raise ValueError(f"Query provider {self.query.provider.value} does not match job provider")
        if self.page_size <= 0:
            raise ValueError("page_size must be > 0")
        if self.max_duration_seconds <= 0:
            raise ValueError("max_duration_seconds must be > 0")

    @property
    def job_id(self) -> str:
        return f"{self.chain.value}-sync-transfers-{self.provider.value}"

    def facilitators(self) -> list[FacilitatorConfig]:
        """Enabled facilitators for this job's chain."""
        return get_facilitators(self.chain)


JOBS: tuple[ChainSyncConfig, ...] = (
    ChainSyncConfig(
        chain=Chain.BASE,
        provider=Provider.BITQUERY,
        query=BitqueryEvmTransfersQuery("base"),
        cron="*/30 * * * *",
        max_duration_seconds=1000,
        api_url=BITQUERY_STREAMING_URL,
        pagination=PaginationStrategy.OFFSET,
        page_size=20_000,
    ),
    ChainSyncConfig(
        chain=Chain.POLYGON,
        provider=Provider.BITQUERY,
        query=BitqueryEvmTransfersQuery("matic"),
        cron="*/30 * * * *",
        max_duration_seconds=1000,
        api_url=BITQUERY_STREAMING_URL,
        pagination=PaginationStrategy.OFFSET,
        page_size=20_000,
        fallback_lookback=timedelta(days=180),
        enabled=False,
    ),
    ChainSyncConfig(
        chain=Chain.SOLANA,
        provider=Provider.BITQUERY,
        query=BitquerySolanaTransfersQuery(),
        cron="*/30 * * * *",
        max_duration_seconds=300,
        api_url=BITQUERY_V1_URL,
        pagination=PaginationStrategy.OFFSET,
        page_size=20_000,
    ),
    ChainSyncConfig(
        chain=Chain.SOLANA,
        provider=Provider.BIGQUERY,
        query=BigQuerySolanaTransfersQuery(),
        cron="0 * * * *",
        max_duration_seconds=1800,
        pagination=PaginationStrategy.TIME_WINDOW,
        page_size=20_000,
        window=timedelta(days=3),
        stream_to_storage=True,
    ),
)


def get_job(job_id: str, jobs: tuple[ChainSyncConfig, ...] = JOBS) -> ChainSyncConfig:
    """Look up a job by its id.

    Raises:
        KeyError: If no job has that id.
    """
    for job in jobs:
        if job.job_id == job_id:
            return job
    raise KeyError(f"Unknown job '{job_id}'. Known jobs: {', '.join(j.job_id for j in jobs)}")
