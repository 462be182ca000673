"""Watermark resolution for a (chain, provider, facilitator) stream."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Protocol

from x402_transfer_sync.errors import WatermarkError
from x402_transfer_sync.models import Chain, FacilitatorConfig, Provider, TransferEvent

logger = logging.getLogger(__name__)


class MostRecentLookup(Protocol):
    async def find_most_recent(
        self, chain: Chain, provider: Provider, facilitator_id: str
    ) -> TransferEvent | None: ...


async def resolve_watermark(
    lookup: MostRecentLookup,
    *,
    chain: Chain,
    provider: Provider,
    facilitator: FacilitatorConfig,
    now: datetime,
    fallback_lookback: timedelta | None = None,
) -> datetime:
    """Return the inclusive lower bound to resume fetching from.

    The most recent stored transfer's block_timestamp wins. The transfer at
    that exact timestamp is fetched again and dropped by the idempotent
    insert. Without stored transfers the facilitator's sync_start_date is
    used, then `now - fallback_lookback`.

    Raises:
        WatermarkError: If nothing is stored and no fallback is configured.
    """
    most_recent = await lookup.find_most_recent(chain, provider, facilitator.id)
    if most_recent is not None:
        since = most_recent.block_timestamp
        source = "stored"
    elif facilitator.sync_start_date is not None:
        since = facilitator.sync_start_date
        source = "sync_start_date"
    elif fallback_lookback is not None:
        since = now - fallback_lookback
        source = "fallback_lookback"
    else:
        raise WatermarkError(
            f"No watermark source for facilitator '{facilitator.id}' on {chain.value}/{provider.value}"
        )

    if since > now:
        logger.warning(
            "Watermark is ahead of now, clamping: facilitator=%s since=%s now=%s",
            facilitator.id,
            since.isoformat(),
            now.isoformat(),
        )
        since = now

    logger.debug("Resolved watermark: facilitator=%s since=%s source=%s", facilitator.id, since.isoformat(), source)
    return since
