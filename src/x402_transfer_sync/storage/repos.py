"""Repository for synced transfer events.

Exposes the two storage operations the sync engine depends on: the
most-recent lookup used for watermarks and the idempotent batch insert.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from x402_transfer_sync.errors import StorageError
from x402_transfer_sync.models import Chain, Provider, TransferEvent
from x402_transfer_sync.storage.models import TransferEventModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 500
NATURAL_KEY_COLUMNS = ["chain", "provider", "tx_hash", "address", "sender", "recipient", "amount"]


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on DateTime(timezone=True) columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def transfer_from_model(model: TransferEventModel) -> TransferEvent:
    return TransferEvent(
        chain=Chain(model.chain),
        provider=Provider(model.provider),
        address=model.address,
        transaction_from=model.transaction_from,
        sender=model.sender,
        recipient=model.recipient,
        amount=int(model.amount),
        block_timestamp=_as_utc(model.block_timestamp),
        tx_hash=model.tx_hash,
        decimals=model.decimals,
        facilitator_id=model.facilitator_id,
    )


def _row(transfer: TransferEvent, created_at: datetime) -> dict[str, Any]:
    return {
        "chain": transfer.chain.value,
        "provider": transfer.provider.value,
        "address": transfer.address,
        "transaction_from": transfer.transaction_from,
        "sender": transfer.sender,
        "recipient": transfer.recipient,
        "amount": transfer.amount,
        "decimals": transfer.decimals,
        "block_timestamp": transfer.block_timestamp,
        "tx_hash": transfer.tx_hash,
        "facilitator_id": transfer.facilitator_id,
        "created_at": created_at,
    }


class TransferEventRepository:
    """Repository for transfer events."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def find_most_recent(
        self, chain: Chain, provider: Provider, facilitator_id: str
    ) -> TransferEvent | None:
        """Get the most recent transfer of a (chain, provider, facilitator) stream.

        Raises:
            StorageError: If the lookup fails.
        """
        stmt = (
            select(TransferEventModel)
            .where(
                (TransferEventModel.chain == chain.value)
                & (TransferEventModel.provider == provider.value)
                & (TransferEventModel.facilitator_id == facilitator_id)
            )
            .order_by(TransferEventModel.block_timestamp.desc(), TransferEventModel.id.desc())
            .limit(1)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Most-recent lookup failed for {chain.value}/{provider.value}/{facilitator_id}"
            ) from e
        model = result.scalar_one_or_none()
        return transfer_from_model(model) if model else None

    async def insert_many(self, transfers: Sequence[TransferEvent]) -> int:
        """Insert transfers, silently skipping natural-key duplicates.

        Returns:
            Number of newly inserted rows.

        Raises:
            StorageError: If the insert fails for any reason other than a
                natural-key conflict.
        """
        unique: dict[tuple[Any, ...], TransferEvent] = {}
        for transfer in transfers:
            unique.setdefault(transfer.natural_key, transfer)
        if not unique:
            return 0

        now = datetime.now(UTC)
        rows = [_row(t, now) for t in unique.values()]
        insert = pg_insert if self.session.get_bind().dialect.name == "postgresql" else sqlite_insert

        inserted = 0
        try:
            for i in range(0, len(rows), INSERT_CHUNK_SIZE):
                stmt = (
                    insert(TransferEventModel)
                    .values(rows[i : i + INSERT_CHUNK_SIZE])
                    .on_conflict_do_nothing(index_elements=NATURAL_KEY_COLUMNS)
                    .returning(TransferEventModel.id)
                )
                result = await self.session.execute(stmt)
                inserted += len(result.all())
            await self.session.flush()
        except SQLAlchemyError as e:
            raise StorageError(f"Batch insert of {len(rows)} transfers failed") from e

        logger.debug("Inserted %d of %d transfers", inserted, len(transfers))
        return inserted

    async def count(
        self,
        *,
        chain: Chain | None = None,
        provider: Provider | None = None,
        facilitator_id: str | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(TransferEventModel)
        if chain is not None:
            stmt = stmt.where(TransferEventModel.chain == chain.value)
        if provider is not None:
            stmt = stmt.where(TransferEventModel.provider == provider.value)
        if facilitator_id is not None:
            stmt = stmt.where(TransferEventModel.facilitator_id == facilitator_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
