"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from x402_transfer_sync.facilitators import USDC_BASE_TOKEN, USDC_SOLANA_TOKEN
from x402_transfer_sync.models import Chain, FacilitatorConfig, Provider, TransferEvent
from x402_transfer_sync.providers.base import QueryContext
from x402_transfer_sync.storage.models import Base


@pytest.fixture
def base_facilitator() -> FacilitatorConfig:
    """Sample Base facilitator."""
    return FacilitatorConfig(
        id="coinbase",
        chain=Chain.BASE,
        address="0xdbdf3d8ed80f84c35d01c6c9f9271761bad90ba6",
        token=USDC_BASE_TOKEN,
        sync_start_date=datetime(2025, 5, 5, tzinfo=UTC),
    )


@pytest.fixture
def solana_facilitator() -> FacilitatorConfig:
    """Sample Solana facilitator."""
    return FacilitatorConfig(
        id="payAI",
        chain=Chain.SOLANA,
        address="2wKupLR9q6wXYppw8Gr2NvWxKBUqm4PPJKkQfoxHDBg4",
        token=USDC_SOLANA_TOKEN,
        sync_start_date=datetime(2025, 7, 1, tzinfo=UTC),
    )


@pytest.fixture
def base_context(base_facilitator: FacilitatorConfig) -> QueryContext:
    return QueryContext(chain=Chain.BASE, provider=Provider.BITQUERY, facilitator=base_facilitator)


@pytest.fixture
def make_transfer():
    """Factory for TransferEvents with overridable fields."""

    def _make(
        tx_hash: str = "0x" + "a" * 64,
        *,
        block_timestamp: datetime | None = None,
        amount: int = 1_500_000,
        facilitator_id: str = "coinbase",
        chain: Chain = Chain.BASE,
        provider: Provider = Provider.BITQUERY,
        recipient: str = "0x1234567890abcdef1234567890abcdef12345678",
    ) -> TransferEvent:
        return TransferEvent(
            chain=chain,
            provider=provider,
            address=USDC_BASE_TOKEN.address.lower(),
            transaction_from="0xdbdf3d8ed80f84c35d01c6c9f9271761bad90ba6",
            sender="0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa",
            recipient=recipient,
            amount=amount,
            block_timestamp=block_timestamp or datetime(2025, 6, 1, 12, 0, tzinfo=UTC),
            tx_hash=tx_hash,
            decimals=6,
            facilitator_id=facilitator_id,
        )

    return _make


@pytest.fixture
async def async_engine(tmp_path):
    """Create a file-backed async SQLite engine shared across sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'transfers.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory) -> AsyncSession:
    """Create an async session for testing."""
    async with session_factory() as session:
        yield session


class FakeCredentials:
    """google-auth style credentials whose refresh mints numbered tokens."""

    def __init__(self) -> None:
        self.token: str | None = None
        self.valid = False
        self.refreshes = 0

    def refresh(self, request) -> None:
        self.refreshes += 1
        self.token = f"ya29.token-{self.refreshes}"
        self.valid = True


@pytest.fixture
def fake_credentials() -> FakeCredentials:
    return FakeCredentials()
