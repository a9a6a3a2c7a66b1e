"""SQLAlchemy ORM models for positions, pools and liquidations."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class PoolORM(Base):
    __tablename__ = "pools"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    pool_address: Mapped[str] = mapped_column(String(66), unique=True, nullable=False)
    collateral_asset: Mapped[str] = mapped_column(String(20), nullable=False)
    debt_asset: Mapped[str] = mapped_column(String(20), nullable=False)
    max_ltv: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    liquidation_threshold: Mapped[Decimal] = mapped_column(
        Numeric(5, 4),
        CheckConstraint("liquidation_threshold > 0 AND liquidation_threshold <= 1"),
        nullable=False,
    )
    liquidation_bonus: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 4),
        CheckConstraint("liquidation_bonus >= 0 AND liquidation_bonus <= 1"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class PositionORM(Base):
    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    pool_address: Mapped[str] = mapped_column(String(66), nullable=False)
    collateral_asset: Mapped[str] = mapped_column(String(20), nullable=False)
    debt_asset: Mapped[str] = mapped_column(String(20), nullable=False)
    collateral_amount: Mapped[Decimal] = mapped_column(
        Numeric(36, 18),
        CheckConstraint("collateral_amount >= 0"),
        nullable=False,
        default=Decimal("0"),
    )
    debt_amount: Mapped[Decimal] = mapped_column(
        Numeric(36, 18),
        CheckConstraint("debt_amount >= 0"),
        nullable=False,
        default=Decimal("0"),
    )
    health_factor: Mapped[Decimal | None] = mapped_column(Numeric(36, 18))
    status: Mapped[str] = mapped_column(
        String(12),
        CheckConstraint("status IN ('active', 'liquidated', 'closed')"),
        nullable=False,
        default="active",
    )
    liquidation_claim: Mapped[str | None] = mapped_column(String(36))
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_positions_user_id", "user_id"),
        Index("idx_positions_pool_address", "pool_address"),
        Index("idx_positions_status", "status"),
        Index("idx_positions_health_factor", "health_factor"),
        Index("idx_positions_status_health", "status", "health_factor"),
        Index("idx_positions_last_updated", "last_updated"),
    )


class LiquidationORM(Base):
    __tablename__ = "liquidations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    position_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("positions.id", ondelete="RESTRICT"), nullable=False
    )
    liquidator_address: Mapped[str] = mapped_column(String(66), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), unique=True, nullable=False)
    collateral_seized: Mapped[Decimal] = mapped_column(
        Numeric(36, 18), CheckConstraint("collateral_seized >= 0"), nullable=False
    )
    debt_repaid: Mapped[Decimal] = mapped_column(
        Numeric(36, 18), CheckConstraint("debt_repaid >= 0"), nullable=False
    )
    liquidation_bonus: Mapped[Decimal] = mapped_column(
        Numeric(36, 18), CheckConstraint("liquidation_bonus >= 0"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_liquidations_position_id", "position_id"),
        Index("idx_liquidations_liquidator", "liquidator_address"),
        Index("idx_liquidations_timestamp", "timestamp"),
    )
