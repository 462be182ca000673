"""Domain models for transfer sync."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Chain(str, Enum):
    """Networks a facilitator can operate on."""

    BASE = "base"
    POLYGON = "polygon"
    SOLANA = "solana"


class Provider(str, Enum):
    """Chain indexers that produce transfer records."""

    BITQUERY = "bitquery"
    BIGQUERY = "bigquery"


class PaginationStrategy(str, Enum):
    """How a job covers a time range against its provider."""

    OFFSET = "offset"
    TIME_WINDOW = "time_window"


@dataclass(frozen=True)
class TokenConfig:
    """Token tracked for a facilitator."""

    address: str
    decimals: int
    symbol: str

    @property
    def multiplier(self) -> int:
        """Factor converting a human-readable amount to smallest units."""
        return 10**self.decimals


@dataclass(frozen=True)
class FacilitatorConfig:
    """A known facilitator address whose outgoing token transfers are synced."""

    id: str
    chain: Chain
    address: str
    token: TokenConfig
    enabled: bool = True
    sync_start_date: datetime | None = None


@dataclass(frozen=True)
class TransferEvent:
    """Canonical transfer record, persisted once and never mutated."""

    chain: Chain
    provider: Provider
    address: str
    transaction_from: str
    sender: str
    recipient: str
    amount: int  # smallest token units
    block_timestamp: datetime
    tx_hash: str
    decimals: int
    facilitator_id: str

    @property
    def natural_key(self) -> tuple[str, str, str, str, str, str, int]:
        return (
            self.chain.value,
            self.provider.value,
            self.tx_hash,
            self.address,
            self.sender,
            self.recipient,
            self.amount,
        )
