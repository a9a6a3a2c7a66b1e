"""Initial schema: pools, positions, liquidations.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- pools ---
    op.create_table(
        "pools",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("pool_address", sa.String(66), unique=True, nullable=False),
        sa.Column("collateral_asset", sa.String(20), nullable=False),
        sa.Column("debt_asset", sa.String(20), nullable=False),
        sa.Column("max_ltv", sa.Numeric(5, 4), nullable=False),
        sa.Column(
            "liquidation_threshold",
            sa.Numeric(5, 4),
            sa.CheckConstraint("liquidation_threshold > 0 AND liquidation_threshold <= 1"),
            nullable=False,
        ),
        sa.Column(
            "liquidation_bonus",
            sa.Numeric(5, 4),
            sa.CheckConstraint("liquidation_bonus >= 0 AND liquidation_bonus <= 1"),
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- positions ---
    op.create_table(
        "positions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("pool_address", sa.String(66), nullable=False),
        sa.Column("collateral_asset", sa.String(20), nullable=False),
        sa.Column("debt_asset", sa.String(20), nullable=False),
        sa.Column(
            "collateral_amount",
            sa.Numeric(36, 18),
            sa.CheckConstraint("collateral_amount >= 0"),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "debt_amount",
            sa.Numeric(36, 18),
            sa.CheckConstraint("debt_amount >= 0"),
            nullable=False,
            server_default="0",
        ),
        # NULL = no debt
        sa.Column("health_factor", sa.Numeric(36, 18)),
        sa.Column(
            "status",
            sa.String(12),
            sa.CheckConstraint("status IN ('active', 'liquidated', 'closed')"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("liquidation_claim", sa.String(36)),
        sa.Column("claimed_at", sa.DateTime(timezone=True)),
        sa.Column(
            "last_updated", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_positions_user_id", "positions", ["user_id"])
    op.create_index("idx_positions_pool_address", "positions", ["pool_address"])
    op.create_index("idx_positions_status", "positions", ["status"])
    op.create_index("idx_positions_health_factor", "positions", ["health_factor"])
    op.create_index("idx_positions_status_health", "positions", ["status", "health_factor"])
    op.create_index("idx_positions_last_updated", "positions", ["last_updated"])

    # --- liquidations (append-only) ---
    op.create_table(
        "liquidations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "position_id",
            sa.String(36),
            sa.ForeignKey("positions.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("liquidator_address", sa.String(66), nullable=False),
        sa.Column("transaction_hash", sa.String(66), unique=True, nullable=False),
        sa.Column(
            "collateral_seized",
            sa.Numeric(36, 18),
            sa.CheckConstraint("collateral_seized >= 0"),
            nullable=False,
        ),
        sa.Column(
            "debt_repaid",
            sa.Numeric(36, 18),
            sa.CheckConstraint("debt_repaid >= 0"),
            nullable=False,
        ),
        sa.Column(
            "liquidation_bonus",
            sa.Numeric(36, 18),
            sa.CheckConstraint("liquidation_bonus >= 0"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_liquidations_position_id", "liquidations", ["position_id"])
    op.create_index("idx_liquidations_liquidator", "liquidations", ["liquidator_address"])
    op.create_index("idx_liquidations_timestamp", "liquidations", [sa.text("timestamp DESC")])


def downgrade() -> None:
    op.drop_table("liquidations")
    op.drop_table("positions")
    op.drop_table("pools")
