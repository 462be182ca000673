"""Bitquery GraphQL integrations.

Two Bitquery APIs are used:
- the streaming (v2) API for EVM chains, which exposes `EVM.Transfers`
- the v1 API for Solana, which exposes `solana.transfers`

Both return human-readable amounts, which are scaled to smallest units using
the facilitator's token decimals.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from x402_transfer_sync.errors import MalformedResponseError
from x402_transfer_sync.models import Provider, TransferEvent
from x402_transfer_sync.providers.base import (
    ProviderQuery,
    QueryContext,
    format_timestamp,
    parse_timestamp,
    require,
    scale_amount,
)

BITQUERY_STREAMING_URL = "https://streaming.bitquery.io/graphql"
BITQUERY_V1_URL = "https://graphql.bitquery.io"


def _limit_clause(page_size: int, offset: int | None) -> str:
    if offset is None:
        return f"{{count: {page_size}}}"
    return f"{{count: {page_size}, offset: {offset}}}"


def _rows(payload: Any, *path: str) -> list[Any]:
    rows = require(payload, *path)
    if not isinstance(rows, list):
        raise MalformedResponseError(f"Expected a list at '{'.'.join(path)}'")
    return rows


class BitqueryEvmTransfersQuery(ProviderQuery):
    """Transfers sent by a facilitator on an EVM network (streaming API)."""

    provider = Provider.BITQUERY
    supports_offset = True

    def __init__(self, network: str, *, dataset: str = "combined") -> None:
        self.network = network
        self.dataset = dataset

    def build_query(
        self,
        context: QueryContext,
        start: datetime,
        end: datetime,
        page_size: int,
        offset: int | None = None,
    ) -> str:
        senders = [address.lower() for address in context.facilitator_addresses]
        token = context.facilitator.token.address.lower()
        return f"""
{{
  EVM(network: {self.network}, dataset: {self.dataset}) {{
    Transfers(
      limit: {_limit_clause(page_size, offset)}
      where: {{
        Transaction: {{From: {{in: {json.dumps(senders)}}}}}
        Transfer: {{Currency: {{SmartContract: {{is: {json.dumps(token)}}}}}}}
        Block: {{Time: {{since: "{format_timestamp(start)}", before: "{format_timestamp(end)}"}}}}
      }}
      orderBy: {{descending: Block_Time}}
    ) {{
      Transfer {{
        Amount
        Sender
        Receiver
        Currency {{
          SmartContract
          Symbol
        }}
      }}
      Block {{
        Time
        Number
      }}
      Transaction {{
        Hash
        From
      }}
    }}
  }}
}}
"""

    def transform_response(self, payload: Any, context: QueryContext) -> list[TransferEvent]:
        token = context.facilitator.token
        transfers = []
        for row in _rows(payload, "EVM", "Transfers"):
            transfers.append(
                TransferEvent(
                    chain=context.chain,
                    provider=self.provider,
                    address=str(require(row, "Transfer", "Currency", "SmartContract")).lower(),
                    transaction_from=str(require(row, "Transaction", "From")).lower(),
                    sender=str(require(row, "Transfer", "Sender")).lower(),
                    recipient=str(require(row, "Transfer", "Receiver")).lower(),
                    amount=scale_amount(require(row, "Transfer", "Amount"), token.multiplier),
                    block_timestamp=parse_timestamp(require(row, "Block", "Time")),
                    tx_hash=str(require(row, "Transaction", "Hash")).lower(),
                    decimals=token.decimals,
                    facilitator_id=context.facilitator.id,
                )
            )
        return transfers


class BitquerySolanaTransfersQuery(ProviderQuery):
    """Transfers signed by a facilitator on Solana (v1 API)."""

    provider = Provider.BITQUERY
    supports_offset = True

    def __init__(self, network: str = "solana") -> None:
        self.network = network

    def build_query(
        self,
        context: QueryContext,
        start: datetime,
        end: datetime,
        page_size: int,
        offset: int | None = None,
    ) -> str:
        options = f'{{desc: "block.timestamp.time", limit: {page_size}'
        if offset is not None:
            options += f", offset: {offset}"
        options += "}"
        return f"""
{{
  solana(network: {self.network}) {{
    sent: transfers(
      options: {options}
      time: {{since: "{format_timestamp(start)}", before: "{format_timestamp(end)}"}}
      amount: {{gt: 0}}
      currency: {{is: {json.dumps(context.facilitator.token.address)}}}
      signer: {{in: {json.dumps(context.facilitator_addresses)}}}
    ) {{
      block {{
        timestamp {{
          time(format: "%Y-%m-%d %H:%M:%S")
        }}
        height
      }}
      sender {{
        address
      }}
      receiver {{
        address
      }}
      amount
      currency {{
        address
        symbol
      }}
      transaction {{
        feePayer
        signature
      }}
    }}
  }}
}}
"""

    def transform_response(self, payload: Any, context: QueryContext) -> list[TransferEvent]:
        token = context.facilitator.token
        transfers = []
        for row in _rows(payload, "solana", "sent"):
            transfers.append(
                TransferEvent(
                    chain=context.chain,
                    provider=self.provider,
                    address=str(require(row, "currency", "address")),
                    transaction_from=str(require(row, "transaction", "feePayer")),
                    sender=str(require(row, "sender", "address")),
                    recipient=str(require(row, "receiver", "address")),
                    amount=scale_amount(require(row, "amount"), token.multiplier),
                    block_timestamp=parse_timestamp(require(row, "block", "timestamp", "time")),
                    tx_hash=str(require(row, "transaction", "signature")),
                    decimals=token.decimals,
                    facilitator_id=context.facilitator.id,
                )
            )
        return transfers
