"""DB repositories: PositionRepo, PoolRepo, LiquidationRepo."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from liquidation_engine.db.models import LiquidationORM, PoolORM, PositionORM
from liquidation_engine.errors import LiquidationInProgress, PositionNotActive, PositionNotFound
from liquidation_engine.models.liquidation import LiquidationRecord
from liquidation_engine.models.position import Pool, Position, PositionStatus

logger = structlog.get_logger()


def _orm_to_position(orm: PositionORM) -> Position:
    """Convert PositionORM to Position Pydantic model."""
    return Position(
        id=orm.id,
        user_id=orm.user_id,
        pool_address=orm.pool_address,
        collateral_asset=orm.collateral_asset,
        debt_asset=orm.debt_asset,
        collateral_amount=orm.collateral_amount or Decimal("0"),
        debt_amount=orm.debt_amount or Decimal("0"),
        health_factor=orm.health_factor,
        status=PositionStatus(orm.status),
        last_updated=orm.last_updated,
    )


def _orm_to_pool(orm: PoolORM) -> Pool:
    return Pool(
        pool_address=orm.pool_address,
        collateral_asset=orm.collateral_asset,
        debt_asset=orm.debt_asset,
        max_ltv=orm.max_ltv,
        liquidation_threshold=orm.liquidation_threshold,
        liquidation_bonus=orm.liquidation_bonus,
        is_active=orm.is_active,
    )


def _orm_to_liquidation(orm: LiquidationORM) -> LiquidationRecord:
    return LiquidationRecord(
        id=orm.id,
        position_id=orm.position_id,
        liquidator_address=orm.liquidator_address,
        transaction_hash=orm.transaction_hash,
        collateral_seized=orm.collateral_seized,
        debt_repaid=orm.debt_repaid,
        liquidation_bonus=orm.liquidation_bonus,
        timestamp=orm.timestamp,
    )


class PositionRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, position_id: str) -> Position | None:
        async with self.session_factory() as session:
            orm = await session.get(PositionORM, position_id)
            return _orm_to_position(orm) if orm is not None else None

    async def get_active(self) -> list[Position]:
        """Active positions, worst stored health factor first, unknown last."""
        async with self.session_factory() as session:
            stmt = (
                select(PositionORM)
                .where(PositionORM.status == PositionStatus.ACTIVE.value)
                .order_by(PositionORM.health_factor.asc().nulls_last())
            )
            result = await session.execute(stmt)
            return [_orm_to_position(p) for p in result.scalars().all()]

    async def get_liquidatable(self, threshold: Decimal = Decimal("1.0")) -> list[Position]:
        """Active positions whose stored health factor is strictly below ``threshold``."""
        async with self.session_factory() as session:
            stmt = (
                select(PositionORM)
                .where(
                    PositionORM.status == PositionStatus.ACTIVE.value,
                    PositionORM.health_factor.is_not(None),
                    PositionORM.health_factor < threshold,
                )
                .order_by(PositionORM.health_factor.asc())
            )
            result = await session.execute(stmt)
            return [_orm_to_position(p) for p in result.scalars().all()]

    async def update(self, position_id: str, data: dict) -> Position:
        """Update fields of an active, unclaimed position.

        Liquidated and closed positions are terminal, and a claimed position
        belongs to the executor holding the claim.
        """
        values = {k: v.value if isinstance(v, PositionStatus) else v for k, v in data.items()}
        async with self.session_factory() as session:
            stmt = (
                update(PositionORM)
                .where(
                    PositionORM.id == position_id,
                    PositionORM.status == PositionStatus.ACTIVE.value,
                    PositionORM.liquidation_claim.is_(None),
                )
                .values(**values, last_updated=datetime.now(timezone.utc))
                .returning(PositionORM)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            orm = result.scalar_one_or_none()
            if orm is None:
                await session.rollback()
                current = await session.get(PositionORM, position_id)
                if current is None:
                    raise PositionNotFound(
                        f"Position not found: {position_id}", position_id=position_id
                    )
                if current.status != PositionStatus.ACTIVE.value:
                    raise PositionNotActive(
                        f"Position is not active: {current.status}",
                        position_id=position_id,
                        status=current.status,
                    )
                raise LiquidationInProgress(
                    f"Position {position_id} is being liquidated", position_id=position_id
                )
            position = _orm_to_position(orm)
            await session.commit()
            logger.info("position_updated", position_id=position_id, fields=list(data.keys()))
            return position

    async def update_health_factor(self, position_id: str, health_factor: Decimal | None) -> bool:
        """Persist a refreshed health factor. No-op once the position left ``active``."""
        async with self.session_factory() as session:
            stmt = (
                update(PositionORM)
                .where(
                    PositionORM.id == position_id,
                    PositionORM.status == PositionStatus.ACTIVE.value,
                )
                .values(health_factor=health_factor, last_updated=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def claim_for_liquidation(
        self, position_id: str, claim_token: str, ttl_seconds: int = 300
    ) -> bool:
        """Atomically take the position's liquidation claim.

        Succeeds only while the position is active and unclaimed (or the
        previous claim expired). At most one caller gets ``True``.
        """
        now = datetime.now(timezone.utc)
        expired_before = now - timedelta(seconds=ttl_seconds)
        async with self.session_factory() as session:
            stmt = (
                update(PositionORM)
                .where(
                    PositionORM.id == position_id,
                    PositionORM.status == PositionStatus.ACTIVE.value,
                    or_(
                        PositionORM.liquidation_claim.is_(None),
                        PositionORM.claimed_at < expired_before,
                    ),
                )
                .values(liquidation_claim=claim_token, claimed_at=now)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            await session.commit()
            claimed = result.rowcount == 1
            logger.debug("liquidation_claim_attempt", position_id=position_id, claimed=claimed)
            return claimed

    async def release_claim(self, position_id: str, claim_token: str) -> None:
        async with self.session_factory() as session:
            stmt = (
                update(PositionORM)
                .where(
                    PositionORM.id == position_id,
                    PositionORM.liquidation_claim == claim_token,
                )
                .values(liquidation_claim=None, claimed_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.execute(stmt)
            await session.commit()

    async def apply_liquidation(
        self,
        position_id: str,
        claim_token: str,
        collateral_amount: Decimal,
        debt_amount: Decimal,
        status: PositionStatus,
        health_factor: Decimal | None,
    ) -> Position | None:
        """Write post-liquidation balances and drop the claim in one statement.

        Returns ``None`` if the claim is no longer held by ``claim_token``.
        """
        async with self.session_factory() as session:
            stmt = (
                update(PositionORM)
                .where(
                    PositionORM.id == position_id,
                    PositionORM.liquidation_claim == claim_token,
                )
                .values(
                    collateral_amount=collateral_amount,
                    debt_amount=debt_amount,
                    status=status.value,
                    health_factor=health_factor,
                    liquidation_claim=None,
                    claimed_at=None,
                    last_updated=datetime.now(timezone.utc),
                )
                .returning(PositionORM)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            orm = result.scalar_one_or_none()
            await session.commit()
            if orm is None:
                return None
            logger.info(
                "position_liquidation_applied",
                position_id=position_id,
                status=status.value,
                debt_amount=str(debt_amount),
            )
            return _orm_to_position(orm)


class PoolRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_by_address(self, pool_address: str) -> Pool | None:
        async with self.session_factory() as session:
            stmt = select(PoolORM).where(PoolORM.pool_address == pool_address)
            result = await session.execute(stmt)
            orm = result.scalar_one_or_none()
            return _orm_to_pool(orm) if orm is not None else None

    async def get_many(self, pool_addresses: set[str]) -> dict[str, Pool]:
        """Load several pools in one query, keyed by address."""
        if not pool_addresses:
            return {}
        async with self.session_factory() as session:
            stmt = select(PoolORM).where(PoolORM.pool_address.in_(pool_addresses))
            result = await session.execute(stmt)
            return {p.pool_address: _orm_to_pool(p) for p in result.scalars().all()}


class LiquidationRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create(self, data: dict) -> LiquidationRecord:
        """Insert an immutable liquidation record."""
        async with self.session_factory() as session:
            orm = LiquidationORM(**data)
            session.add(orm)
            await session.flush()
            record = _orm_to_liquidation(orm)
            await session.commit()
            logger.info(
                "liquidation_recorded",
                liquidation_id=record.id,
                position_id=record.position_id,
                tx_hash=record.transaction_hash,
            )
            return record

    async def get_by_position(self, position_id: str) -> list[LiquidationRecord]:
        async with self.session_factory() as session:
            stmt = (
                select(LiquidationORM)
                .where(LiquidationORM.position_id == position_id)
                .order_by(LiquidationORM.timestamp.desc())
            )
            result = await session.execute(stmt)
            return [_orm_to_liquidation(r) for r in result.scalars().all()]
