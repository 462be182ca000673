"""Tests for the transfer event repository."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from x402_transfer_sync.errors import StorageError
from x402_transfer_sync.models import Chain, Provider
from x402_transfer_sync.storage.repos import INSERT_CHUNK_SIZE, TransferEventRepository


class TestInsertMany:
    """Tests for TransferEventRepository.insert_many."""

    @pytest.mark.asyncio
    async def test_inserts_new_transfers(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)

        inserted = await repo.insert_many([make_transfer("0x01"), make_transfer("0x02")])

        assert inserted == 2
        assert await repo.count() == 2

    @pytest.mark.asyncio
    async def test_reinsert_is_idempotent(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)
        batch = [make_transfer("0x01"), make_transfer("0x02")]

        await repo.insert_many(batch)
        inserted = await repo.insert_many(batch + [make_transfer("0x03")])

        assert inserted == 1
        assert await repo.count() == 3

    @pytest.mark.asyncio
    async def test_duplicates_within_batch_counted_once(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)

        inserted = await repo.insert_many([make_transfer("0x01"), make_transfer("0x01")])

        assert inserted == 1

    @pytest.mark.asyncio
    async def test_same_tx_different_recipient_is_distinct(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)

        inserted = await repo.insert_many(
            [
                make_transfer("0x01", recipient="0x1111111111111111111111111111111111111111"),
                make_transfer("0x01", recipient="0x2222222222222222222222222222222222222222"),
            ]
        )

        assert inserted == 2

    @pytest.mark.asyncio
    async def test_large_batch_spans_chunks(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)
        batch = [make_transfer(f"0x{i:04x}") for i in range(INSERT_CHUNK_SIZE + 20)]

        assert await repo.insert_many(batch) == INSERT_CHUNK_SIZE + 20

    @pytest.mark.asyncio
    async def test_empty_batch(self, async_session) -> None:
        assert await TransferEventRepository(async_session).insert_many([]) == 0

    @pytest.mark.asyncio
    async def test_database_failure_raises_storage_error(self, make_transfer) -> None:
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "sqlite"
        session.execute = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))

        with pytest.raises(StorageError):
            await TransferEventRepository(session).insert_many([make_transfer("0x01")])

    @pytest.mark.asyncio
    async def test_committed_rows_survive_new_session(self, session_factory, make_transfer) -> None:
        async with session_factory() as session, session.begin():
            await TransferEventRepository(session).insert_many([make_transfer("0x01")])

        async with session_factory() as session:
            assert await TransferEventRepository(session).count() == 1


class TestFindMostRecent:
    """Tests for TransferEventRepository.find_most_recent."""

    @pytest.mark.asyncio
    async def test_returns_none_when_empty(self, async_session) -> None:
        repo = TransferEventRepository(async_session)
        assert await repo.find_most_recent(Chain.BASE, Provider.BITQUERY, "coinbase") is None

    @pytest.mark.asyncio
    async def test_returns_latest_as_aware_utc(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)
        await repo.insert_many(
            [
                make_transfer("0x01", block_timestamp=datetime(2025, 6, 1, tzinfo=UTC)),
                make_transfer("0x02", block_timestamp=datetime(2025, 6, 3, 9, 15, tzinfo=UTC)),
                make_transfer("0x03", block_timestamp=datetime(2025, 6, 2, tzinfo=UTC)),
            ]
        )

        latest = await repo.find_most_recent(Chain.BASE, Provider.BITQUERY, "coinbase")

        assert latest is not None
        assert latest.tx_hash == "0x02"
        assert latest.block_timestamp == datetime(2025, 6, 3, 9, 15, tzinfo=UTC)
        assert latest.block_timestamp.tzinfo is not None
        assert latest.amount == 1_500_000

    @pytest.mark.asyncio
    async def test_scoped_to_stream(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)
        await repo.insert_many(
            [
                make_transfer("0x01", block_timestamp=datetime(2025, 6, 1, tzinfo=UTC)),
                make_transfer(
                    "0x02", block_timestamp=datetime(2025, 6, 5, tzinfo=UTC), facilitator_id="payAI"
                ),
                make_transfer(
                    "0x03", block_timestamp=datetime(2025, 6, 6, tzinfo=UTC), chain=Chain.POLYGON
                ),
                make_transfer(
                    "0x04", block_timestamp=datetime(2025, 6, 7, tzinfo=UTC), provider=Provider.BIGQUERY
                ),
            ]
        )

        latest = await repo.find_most_recent(Chain.BASE, Provider.BITQUERY, "coinbase")

        assert latest is not None
        assert latest.tx_hash == "0x01"


class TestCount:
    """Tests for TransferEventRepository.count."""

    @pytest.mark.asyncio
    async def test_filters(self, async_session, make_transfer) -> None:
        repo = TransferEventRepository(async_session)
        await repo.insert_many(
            [
                make_transfer("0x01"),
                make_transfer("0x02", facilitator_id="payAI"),
                make_transfer("0x03", chain=Chain.POLYGON),
            ]
        )

        assert await repo.count() == 3
        assert await repo.count(chain=Chain.BASE) == 2
        assert await repo.count(chain=Chain.BASE, facilitator_id="payAI") == 1
        assert await repo.count(provider=Provider.BIGQUERY) == 0
