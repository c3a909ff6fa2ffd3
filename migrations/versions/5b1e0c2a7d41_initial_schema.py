"""initial schema

Revision ID: 5b1e0c2a7d41
Revises:
Create Date: 2026-10-18 10:02:11.418230

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b1e0c2a7d41"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create allowance, idempotency and audit tables."""
    op.create_table(
        "twist_user",
        sa.Column("fid", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("pfp_url", sa.Text(), nullable=True),
        sa.Column("spins_left", sa.Integer(), nullable=False),
        sa.Column("last_spin_reset", sa.BigInteger(), nullable=False),
        sa.Column("last_share_spin", sa.BigInteger(), nullable=True),
        sa.Column("last_miniapp_open", sa.BigInteger(), nullable=True),
        sa.Column("has_followed", sa.Boolean(), nullable=False),
        sa.Column("last_checkin", sa.BigInteger(), nullable=True),
        sa.Column("checkin_streak", sa.Integer(), nullable=False),
        sa.Column("total_checkins", sa.Integer(), nullable=False),
        sa.Column("envelope_claimed", sa.Boolean(), nullable=False),
        sa.Column("wallets_json", sa.Text(), nullable=True),
        sa.Column("wallets_updated_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("fid"),
    )
    op.create_table(
        "spin_token",
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_index("ix_spin_token_fid", "spin_token", ["fid"], unique=False)
    op.create_table(
        "payout_claim",
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("random_key", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("result", sa.Text(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.Column("completed_at", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("token"),
    )
    op.create_table(
        "proof_claim",
        sa.Column("random_key", sa.Text(), nullable=False),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("random_key"),
    )
    op.create_table(
        "spin_purchase",
        sa.Column("tx_hash", sa.Text(), nullable=False),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("tx_hash"),
    )
    op.create_index("ix_spin_purchase_fid", "spin_purchase", ["fid"], unique=False)
    op.create_table(
        "winning",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("pfp_url", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("amount", sa.Text(), nullable=False),
        sa.Column("to_address", sa.Text(), nullable=False),
        sa.Column("tx_hash", sa.Text(), nullable=True),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_winning_fid", "winning", ["fid"], unique=False)
    op.create_table(
        "checkin_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("fid", sa.BigInteger(), nullable=False),
        sa.Column("streak", sa.Integer(), nullable=False),
        sa.Column("reward", sa.Integer(), nullable=False),
        sa.Column("bonus", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_checkin_history_fid", "checkin_history", ["fid"], unique=False)
    op.create_table(
        "violation_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("identity", sa.Text(), nullable=False),
        sa.Column("stage", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("blocked", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_violation_log_identity", "violation_log", ["identity"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_violation_log_identity", table_name="violation_log")
    op.drop_table("violation_log")
    op.drop_index("ix_checkin_history_fid", table_name="checkin_history")
    op.drop_table("checkin_history")
    op.drop_index("ix_winning_fid", table_name="winning")
    op.drop_table("winning")
    op.drop_index("ix_spin_purchase_fid", table_name="spin_purchase")
    op.drop_table("spin_purchase")
    op.drop_table("proof_claim")
    op.drop_table("payout_claim")
    op.drop_index("ix_spin_token_fid", table_name="spin_token")
    op.drop_table("spin_token")
    op.drop_table("twist_user")
