"""On-demand risk metrics for a single position."""

from __future__ import annotations

from decimal import Context, Decimal
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from liquidation_engine import risk_math
from liquidation_engine.errors import PoolNotFound, PositionNotActive, PositionNotFound
from liquidation_engine.models.position import PositionStatus

if TYPE_CHECKING:
    from liquidation_engine.db.repository import PoolRepository, PositionRepository
    from liquidation_engine.models.position import Pool, Position
    from liquidation_engine.price_oracle import PriceOracle

logger = structlog.get_logger()


class PositionMetrics(BaseModel):
    position_id: str
    health_factor: Decimal | None
    loan_to_value: Decimal
    max_borrowable: Decimal
    max_withdrawable: Decimal
    collateral_price: Decimal
    debt_price: Decimal


class PositionRiskService:
    """Price a single position outside the monitor tick."""

    def __init__(
        self,
        position_repo: PositionRepository,
        pool_repo: PoolRepository,
        oracle: PriceOracle,
        ctx: Context = risk_math.DEFAULT_CONTEXT,
    ) -> None:
        self.position_repo = position_repo
        self.pool_repo = pool_repo
        self.oracle = oracle
        self.ctx = ctx

    async def refresh_health(self, position_id: str) -> Decimal | None:
        """Recompute and persist one position's health factor at current prices."""
        position, pool = await self._load(position_id)
        if position.status is not PositionStatus.ACTIVE:
            raise PositionNotActive(
                f"Position is not active: {position.status.value}", position_id=position_id
            )
        if not position.has_debt():
            hf = None
        else:
            collateral_price, debt_price = await self._prices(position, fresh=True)
            hf = risk_math.quantize_for_storage(
                risk_math.health_factor(
                    position.collateral_amount,
                    position.debt_amount,
                    collateral_price,
                    debt_price,
                    pool.liquidation_threshold,
                    ctx=self.ctx,
                )
            )
        await self.position_repo.update_health_factor(position_id, hf)
        logger.info(
            "position_health_refreshed",
            position_id=position_id,
            health_factor=str(hf) if hf is not None else None,
        )
        return hf

    async def get_metrics(self, position_id: str) -> PositionMetrics:
        position, pool = await self._load(position_id)
        collateral_price, debt_price = await self._prices(position)
        args = (position.collateral_amount, position.debt_amount, collateral_price, debt_price)
        return PositionMetrics(
            position_id=position_id,
            health_factor=risk_math.health_factor(
                *args, pool.liquidation_threshold, ctx=self.ctx
            ),
            loan_to_value=risk_math.loan_to_value(*args, ctx=self.ctx),
            max_borrowable=risk_math.max_borrowable(
                position.collateral_amount, collateral_price, debt_price, pool.max_ltv, ctx=self.ctx
            ),
            max_withdrawable=risk_math.max_withdrawable(
                *args, pool.liquidation_threshold, ctx=self.ctx
            ),
            collateral_price=collateral_price,
            debt_price=debt_price,
        )

    async def _load(self, position_id: str) -> tuple[Position, Pool]:
        position = await self.position_repo.get(position_id)
        if position is None:
            raise PositionNotFound(f"Position not found: {position_id}", position_id=position_id)
        pool = await self.pool_repo.get_by_address(position.pool_address)
        if pool is None:
            raise PoolNotFound(
                f"Pool not found: {position.pool_address}", pool_address=position.pool_address
            )
        return position, pool

    async def _prices(self, position: Position, fresh: bool = False) -> tuple[Decimal, Decimal]:
        prices = await self.oracle.get_prices(
            {position.collateral_asset, position.debt_asset}, fresh=fresh
        )
        return prices[position.collateral_asset], prices[position.debt_asset]
