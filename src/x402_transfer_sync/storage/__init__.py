"""Storage layer - Database schema and transfer repository."""

from x402_transfer_sync.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from x402_transfer_sync.storage.models import Base, TransferEventModel
from x402_transfer_sync.storage.repos import TransferEventRepository

__all__ = [
    "Base",
    "DatabaseManager",
    "TransferEventModel",
    "TransferEventRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
