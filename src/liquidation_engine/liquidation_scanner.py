"""Find liquidatable positions and rank them by estimated liquidator profit."""

from __future__ import annotations

from decimal import Context, Decimal
from typing import TYPE_CHECKING

import structlog

from liquidation_engine import risk_math
from liquidation_engine.errors import PoolNotFound, PriceUnavailable
from liquidation_engine.models.liquidation import LiquidationOpportunity

if TYPE_CHECKING:
    from liquidation_engine.db.repository import PoolRepository, PositionRepository
    from liquidation_engine.models.position import Pool, Position
    from liquidation_engine.price_oracle import PriceOracle

logger = structlog.get_logger()


class LiquidationScanner:
    """
    On-demand scan for liquidator clients.

    Estimated profit is ``collateral_value * liquidation_bonus``. Gas and
    price impact are left out; the figure is only used for ranking.
    """

    def __init__(
        self,
        position_repo: PositionRepository,
        pool_repo: PoolRepository,
        oracle: PriceOracle,
        liquidation_threshold: Decimal = Decimal("1.0"),
        default_bonus: Decimal = Decimal("0.05"),
        ctx: Context = risk_math.DEFAULT_CONTEXT,
    ) -> None:
        self.position_repo = position_repo
        self.pool_repo = pool_repo
        self.oracle = oracle
        self.liquidation_threshold = liquidation_threshold
        self.default_bonus = default_bonus
        self.ctx = ctx

    async def scan_opportunities(self) -> list[LiquidationOpportunity]:
        """Liquidatable positions, highest estimated profit first."""
        candidates = await self.position_repo.get_liquidatable(self.liquidation_threshold)
        logger.info("liquidation_candidates_found", count=len(candidates))
        if not candidates:
            return []

        symbols = {p.collateral_asset for p in candidates} | {p.debt_asset for p in candidates}
        prices = await self.oracle.get_prices(symbols)
        pools = await self.pool_repo.get_many({p.pool_address for p in candidates})

        opportunities: list[LiquidationOpportunity] = []
        for position in candidates:
            try:
                opportunities.append(
                    self._evaluate(position, pools.get(position.pool_address), prices)
                )
            except Exception:
                logger.exception("liquidation_profitability_failed", position_id=position.id)

        opportunities.sort(key=lambda o: o.estimated_profit, reverse=True)
        logger.info("liquidation_opportunities_ranked", count=len(opportunities))
        return opportunities

    def _evaluate(
        self, position: Position, pool: Pool | None, prices: dict[str, Decimal]
    ) -> LiquidationOpportunity:
        if pool is None:
            raise PoolNotFound(
                f"Pool not found: {position.pool_address}", pool_address=position.pool_address
            )
        collateral_price = prices.get(position.collateral_asset)
        debt_price = prices.get(position.debt_asset)
        if collateral_price is None or debt_price is None:
            raise PriceUnavailable("price missing for candidate", position_id=position.id)

        bonus = pool.liquidation_bonus if pool.liquidation_bonus is not None else self.default_bonus
        collateral_value = risk_math.collateral_value(
            position.collateral_amount, collateral_price, ctx=self.ctx
        )
        debt_value = self.ctx.multiply(position.debt_amount, debt_price)
        return LiquidationOpportunity(
            position_id=position.id,
            user_id=position.user_id,
            pool_address=position.pool_address,
            collateral_asset=position.collateral_asset,
            debt_asset=position.debt_asset,
            collateral_amount=position.collateral_amount,
            debt_amount=position.debt_amount,
            health_factor=position.health_factor,
            collateral_price=collateral_price,
            debt_price=debt_price,
            collateral_value=collateral_value,
            debt_value=debt_value,
            liquidation_bonus=bonus,
            estimated_profit=self.ctx.multiply(collateral_value, bonus),
        )
