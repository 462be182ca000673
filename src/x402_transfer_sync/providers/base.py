"""Provider query contract shared by every chain indexer integration.

Each indexer integration implements two operations: build a query for a
time range (plus an optional offset) and transform the raw result into
canonical TransferEvents. The orchestrator and the paginators only ever see
this interface.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from x402_transfer_sync.errors import MalformedResponseError
from x402_transfer_sync.models import Chain, FacilitatorConfig, Provider, TransferEvent

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?([eE][-+]?\d+)?$")


@dataclass(frozen=True)
class QueryContext:
    """Read-only context for one (chain, provider, facilitator) stream."""

    chain: Chain
    provider: Provider
    facilitator: FacilitatorConfig

    @property
    def facilitator_addresses(self) -> list[str]:
        return [self.facilitator.address]


def scale_amount(raw: Any, multiplier: int) -> int:
    """Convert a human-readable token amount to integer smallest units.

    Rounds half-up so that sub-unit dust never truncates to zero.

    Raises:
        MalformedResponseError: If the amount is not numeric.
    """
    if raw is None or isinstance(raw, bool):
        raise MalformedResponseError(f"Invalid transfer amount: {raw!r}")
    try:
        value = Decimal(str(raw))
    except InvalidOperation as e:
        raise MalformedResponseError(f"Invalid transfer amount: {raw!r}") from e
    if not value.is_finite():
        raise MalformedResponseError(f"Invalid transfer amount: {raw!r}")
    return int((value * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_timestamp(raw: Any) -> datetime:
    """Parse an indexer timestamp into an aware UTC datetime.

    Accepts datetimes, epoch seconds (numbers or numeric strings, as returned
    by the BigQuery REST API), ISO-8601 strings and "YYYY-MM-DD HH:MM:SS"
    strings. Naive values are taken to be UTC.
    """
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        parsed = datetime.fromtimestamp(raw, tz=UTC)
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if _NUMERIC_RE.match(text):
            parsed = datetime.fromtimestamp(float(text), tz=UTC)
        else:
            if text.endswith(" UTC"):
                text = text[: -len(" UTC")]
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError as e:
                raise MalformedResponseError(f"Invalid block timestamp: {raw!r}") from e
    else:
        raise MalformedResponseError(f"Invalid block timestamp: {raw!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def require(data: Any, *path: str) -> Any:
    """Walk a nested mapping, raising MalformedResponseError on a missing field."""
    current = data
    for key in path:
        if not isinstance(current, Mapping) or current.get(key) is None:
            raise MalformedResponseError(f"Missing required field '{'.'.join(path)}'")
        current = current[key]
    return current


def format_timestamp(value: datetime) -> str:
    """Render a range boundary as an ISO-8601 UTC string with a Z suffix."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class ProviderQuery(ABC):
    """Builds provider-specific queries and maps their results to TransferEvents."""

    provider: Provider
    supports_offset: bool = True

    @abstractmethod
    def build_query(
        self,
        context: QueryContext,
        start: datetime,
        end: datetime,
        page_size: int,
        offset: int | None = None,
    ) -> str:
        """Build a query for transfers with timestamp in [start, end).

        Results are ordered by block time descending and limited to page_size.
        Identical inputs must produce identical query text.
        """

    @abstractmethod
    def transform_response(self, payload: Any, context: QueryContext) -> list[TransferEvent]:
        """Map a provider result to canonical transfers (empty result -> [])."""

    def request_body(self, query: str, page_size: int) -> dict[str, Any]:
        """JSON body posted to the provider endpoint."""
        return {"query": query}

    def extract_payload(self, envelope: Mapping[str, Any]) -> Any:
        """Pull the provider-shaped result out of a successful envelope."""
        if "data" not in envelope or envelope["data"] is None:
            raise MalformedResponseError("Response envelope has no 'data' field")
        return envelope["data"]
