"""Provider query implementations - one per chain indexer integration."""

from x402_transfer_sync.providers.base import (
    ProviderQuery,
    QueryContext,
    parse_timestamp,
    scale_amount,
)
from x402_transfer_sync.providers.bigquery import BigQuerySolanaTransfersQuery
from x402_transfer_sync.providers.bitquery import (
    BitqueryEvmTransfersQuery,
    BitquerySolanaTransfersQuery,
)

__all__ = [
    "BigQuerySolanaTransfersQuery",
    "BitqueryEvmTransfersQuery",
    "BitquerySolanaTransfersQuery",
    "ProviderQuery",
    "QueryContext",
    "parse_timestamp",
    "scale_amount",
]
