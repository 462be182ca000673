"""SQLAlchemy models for persistent storage."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TransferEventModel(Base):
    """Synced facilitator token transfers.

    Rows are inserted once and never updated. The natural-key constraint lets
    re-fetched windows be inserted again without error.
    """

    __tablename__ = "transfer_events"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    chain: Mapped[str] = mapped_column(String(16), nullable=False)
    provider: Mapped[str] = mapped_column(String(16), nullable=False)
    address: Mapped[str] = mapped_column(String(64), nullable=False)  # token contract / mint
    transaction_from: Mapped[str] = mapped_column(String(64), nullable=False)
    sender: Mapped[str] = mapped_column(String(64), nullable=False)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False)

    # Smallest token units; Numeric keeps large values exact on every dialect.
    amount: Mapped[int] = mapped_column(Numeric(40, 0), nullable=False)
    decimals: Mapped[int] = mapped_column(Integer, nullable=False)

    block_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    facilitator_id: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint(
            "chain",
            "provider",
            "tx_hash",
            "address",
            "sender",
            "recipient",
            "amount",
            name="uq_transfer_events_natural_key",
        ),
        Index(
            "idx_transfer_events_watermark",
            "chain",
            "provider",
            "facilitator_id",
            "block_timestamp",
        ),
    )
