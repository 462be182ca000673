"""Create transfer_events table.

Revision ID: 001_transfer_events
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_transfer_events"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "transfer_events",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("chain", sa.String(16), nullable=False),
        sa.Column("provider", sa.String(16), nullable=False),
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("transaction_from", sa.String(64), nullable=False),
        sa.Column("sender", sa.String(64), nullable=False),
        sa.Column("recipient", sa.String(64), nullable=False),
        sa.Column("amount", sa.Numeric(40, 0), nullable=False),
        sa.Column("decimals", sa.Integer(), nullable=False),
        sa.Column("block_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("tx_hash", sa.String(100), nullable=False),
        sa.Column("facilitator_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "chain",
            "provider",
            "tx_hash",
            "address",
            "sender",
            "recipient",
            "amount",
            name="uq_transfer_events_natural_key",
        ),
    )
    op.create_index(
        "idx_transfer_events_watermark",
        "transfer_events",
        ["chain", "provider", "facilitator_id", "block_timestamp"],
    )


def downgrade() -> None:
    op.drop_index("idx_transfer_events_watermark", table_name="transfer_events")
    op.drop_table("transfer_events")
