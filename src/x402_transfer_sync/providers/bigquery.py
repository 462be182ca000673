"""BigQuery warehouse integration for Solana transfers.

Queries go through the BigQuery REST `jobs.query` endpoint, which answers
with a tabular envelope (`schema.fields` plus `rows[].f[].v`). The warehouse
has no stable offset semantics for this query, so jobs using it must
paginate by time window.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from x402_transfer_sync.errors import MalformedResponseError, ProviderError
from x402_transfer_sync.models import Provider, TransferEvent
from x402_transfer_sync.providers.base import (
    ProviderQuery,
    QueryContext,
    parse_timestamp,
    require,
    scale_amount,
)

BIGQUERY_API_BASE = "https://bigquery.googleapis.com/bigquery/v2"
DEFAULT_SOLANA_DATASET = "bigquery-public-data.crypto_solana_mainnet_us"
DEFAULT_QUERY_TIMEOUT_MS = 120_000

_LITERAL_RE = re.compile(r"^[A-Za-z0-9]+$")
_DATASET_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def bigquery_query_url(project_id: str) -> str:
    return f"{BIGQUERY_API_BASE}/projects/{project_id}/queries"


def _literal(value: str) -> str:
    # Addresses are interpolated into SQL; only plain base58/hex text is allowed.
    if not _LITERAL_RE.match(value):
        raise ValueError(f"Refusing to interpolate unsafe value into SQL: {value!r}")
    return f"'{value}'"


def _timestamp_literal(value: datetime) -> str:
    return "TIMESTAMP('" + value.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S.%f") + "+00')"


def decode_rows(envelope: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Decode a `jobs.query` response into one dict per row, keyed by column name."""
    fields = require(envelope, "schema", "fields")
    names = [str(require(field, "name")) for field in fields]
    decoded = []
    for row in envelope.get("rows") or []:
        cells = require(row, "f")
        if len(cells) != len(names):
            raise MalformedResponseError(
                f"Row has {len(cells)} cells but schema has {len(names)} fields"
            )
        decoded.append({name: cell.get("v") for name, cell in zip(names, cells)})
    return decoded


def _total_rows(envelope: Mapping[str, Any]) -> int | None:
    raw = envelope.get("totalRows")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid totalRows: {raw!r}") from e


class BigQuerySolanaTransfersQuery(ProviderQuery):
    """USDC transfers from transactions signed by a facilitator, via BigQuery SQL."""

    provider = Provider.BIGQUERY
    supports_offset = False

    def __init__(
        self,
        dataset: str = DEFAULT_SOLANA_DATASET,
        *,
        timeout_ms: int = DEFAULT_QUERY_TIMEOUT_MS,
    ) -> None:
        if not _DATASET_RE.match(dataset):
            raise ValueError(f"Invalid BigQuery dataset: {dataset!r}")
        self.dataset = dataset
        self.timeout_ms = timeout_ms

    def build_query(
        self,
        context: QueryContext,
        start: datetime,
        end: datetime,
        page_size: int,
        offset: int | None = None,
    ) -> str:
        if offset:
            raise ValueError("BigQuery transfer queries do not support offsets")
        signers = ", ".join(_literal(a) for a in context.facilitator_addresses)
        mint = _literal(context.facilitator.token.address)
        start_ts = _timestamp_literal(start)
        end_ts = _timestamp_literal(end)
        return f"""
WITH signer_sigs AS (
  SELECT DISTINCT
    tx.signature,
    (
      SELECT a.pubkey
      FROM UNNEST(tx.accounts) AS a WITH OFFSET AS idx
      WHERE a.signer = TRUE
      ORDER BY idx
      LIMIT 1
    ) AS fee_payer
  FROM `{self.dataset}.Transactions` tx
  WHERE tx.block_timestamp >= {start_ts} AND tx.block_timestamp < {end_ts}
    AND EXISTS (
      SELECT 1 FROM UNNEST(tx.accounts) a
      WHERE a.signer = TRUE AND a.pubkey IN ({signers})
    )
)
SELECT
  t.mint AS address,
  s.fee_payer AS transaction_from,
  t.source AS sender,
  t.destination AS recipient,
  SAFE_DIVIDE(t.value, POW(10, t.decimals)) AS amount,
  t.block_timestamp,
  t.tx_signature AS tx_hash
FROM `{self.dataset}.Token Transfers` t
JOIN signer_sigs s ON t.tx_signature = s.signature
WHERE t.block_timestamp >= {start_ts} AND t.block_timestamp < {end_ts}
  AND t.mint = {mint}
  AND t.value IS NOT NULL
  AND t.decimals IS NOT NULL
ORDER BY t.block_timestamp DESC
LIMIT {page_size}
"""

    def request_body(self, query: str, page_size: int) -> dict[str, Any]:
        return {
            "query": query,
            "useLegacySql": False,
            "timeoutMs": self.timeout_ms,
            "maxResults": page_size,
        }

    def extract_payload(self, envelope: Mapping[str, Any]) -> Any:
        job_id = (envelope.get("jobReference") or {}).get("jobId", "?")
        if envelope.get("jobComplete") is False:
            raise ProviderError([f"BigQuery job {job_id} did not complete within {self.timeout_ms}ms"])
        rows = decode_rows(envelope)
        # jobs.query caps the response size; a partial first page carries a
        # pageToken and a totalRows above the rows returned.
        total_rows = _total_rows(envelope)
        if envelope.get("pageToken") or (total_rows is not None and total_rows > len(rows)):
            raise ProviderError(
                [
                    f"BigQuery job {job_id} returned {len(rows)} of {total_rows} rows; "
                    "response was truncated, shrink the time window"
                ]
            )
        return rows

    def transform_response(self, payload: Any, context: QueryContext) -> list[TransferEvent]:
        if not isinstance(payload, list):
            raise MalformedResponseError("Expected decoded BigQuery rows")
        token = context.facilitator.token
        return [
            TransferEvent(
                chain=context.chain,
                provider=self.provider,
                address=str(require(row, "address")),
                transaction_from=str(require(row, "transaction_from")),
                sender=str(require(row, "sender")),
                recipient=str(require(row, "recipient")),
                amount=scale_amount(require(row, "amount"), token.multiplier),
                block_timestamp=parse_timestamp(require(row, "block_timestamp")),
                tx_hash=str(require(row, "tx_hash")),
                decimals=token.decimals,
                facilitator_id=context.facilitator.id,
            )
            for row in payload
        ]
