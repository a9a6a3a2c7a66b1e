"""Validate, submit and record a single liquidation."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Context, Decimal
from typing import TYPE_CHECKING

import structlog

from liquidation_engine import risk_math
from liquidation_engine.errors import (
    ExceedsDebt,
    InsufficientCollateral,
    LiquidationEngineError,
    LiquidationInProgress,
    NotLiquidatable,
    PoolNotFound,
    PositionNotActive,
    PositionNotFound,
    ReconciliationRequired,
    TransactionFailed,
)
from liquidation_engine.models.liquidation import LiquidationResult
from liquidation_engine.models.position import PositionStatus
from liquidation_engine.validation import validate_address, validate_amount

if TYPE_CHECKING:
    from liquidation_engine.db.repository import (
        LiquidationRepository,
        PoolRepository,
        PositionRepository,
    )
    from liquidation_engine.models.position import Pool, Position
    from liquidation_engine.price_oracle import PriceOracle
    from liquidation_engine.risk_math import Numeric
    from liquidation_engine.transaction_executor import TransactionExecutor

logger = structlog.get_logger()


class LiquidationExecutor:
    """
    Execution flow:
    | Step | Check / action                              | Failure                  |
    |------|---------------------------------------------|--------------------------|
    | 1    | position exists                             | PositionNotFound         |
    | 2    | position is active                          | PositionNotActive        |
    | 3    | stored health factor < 1.0                  | NotLiquidatable          |
    | 4    | pool exists                                 | PoolNotFound             |
    | 5    | take position claim (conditional UPDATE)    | LiquidationInProgress    |
    | 6    | debt_to_cover <= debt                       | ExceedsDebt              |
    | 7    | fresh prices, seizure <= collateral         | InsufficientCollateral   |
    | 8    | submit to relay                             | TransactionFailed        |
    | 9    | write balances + drop claim, then record    | ReconciliationRequired   |

    Steps 5-8 release the claim on failure, so the position stays eligible.
    """

    def __init__(
        self,
        position_repo: PositionRepository,
        pool_repo: PoolRepository,
        liquidation_repo: LiquidationRepository,
        oracle: PriceOracle,
        tx_executor: TransactionExecutor,
        liquidation_threshold: Decimal = Decimal("1.0"),
        dust_threshold: Decimal = Decimal("0.000001"),
        default_bonus: Decimal = Decimal("0.05"),
        claim_ttl_seconds: int = 300,
        ctx: Context = risk_math.DEFAULT_CONTEXT,
    ) -> None:
        self.position_repo = position_repo
        self.pool_repo = pool_repo
        self.liquidation_repo = liquidation_repo
        self.oracle = oracle
        self.tx_executor = tx_executor
        self.liquidation_threshold = liquidation_threshold
        self.dust_threshold = dust_threshold
        self.default_bonus = default_bonus
        self.claim_ttl_seconds = claim_ttl_seconds
        self.ctx = ctx

    async def execute(
        self,
        position_id: str,
        liquidator_address: str,
        debt_to_cover: Numeric | None = None,
    ) -> LiquidationResult:
        """Liquidate ``debt_to_cover`` of a position (all of it when omitted)."""
        validate_address(liquidator_address, "liquidator_address")
        requested = None
        if debt_to_cover is not None:
            requested = validate_amount(debt_to_cover, "debt_to_cover")

        logger.info(
            "liquidation_requested",
            position_id=position_id,
            liquidator=liquidator_address,
            debt_to_cover=str(requested) if requested is not None else "full",
        )

        position = await self._load_liquidatable(position_id)
        pool = await self.pool_repo.get_by_address(position.pool_address)
        if pool is None:
            raise PoolNotFound(
                f"Pool not found: {position.pool_address}", pool_address=position.pool_address
            )

        claim_token = str(uuid.uuid4())
        claimed = await self.position_repo.claim_for_liquidation(
            position_id, claim_token, self.claim_ttl_seconds
        )
        if not claimed:
            logger.warning("liquidation_claim_denied", position_id=position_id)
            raise LiquidationInProgress(
                f"Position {position_id} is being liquidated by another executor",
                position_id=position_id,
            )

        try:
            # Re-read under the claim: a liquidation that finished between our
            # first read and the claim may have changed the balances.
            position = await self._load_liquidatable(position_id)
            plan = await self._plan(position, pool, requested)
            tx_hash = await self._submit(position, plan["debt_to_cover"], liquidator_address)
        except Exception:
            await self._release(position_id, claim_token)
            raise

        return await self._settle(position, claim_token, liquidator_address, tx_hash, plan)

    async def _load_liquidatable(self, position_id: str) -> Position:
        position = await self.position_repo.get(position_id)
        if position is None:
            raise PositionNotFound(f"Position not found: {position_id}", position_id=position_id)
        if position.status is not PositionStatus.ACTIVE:
            raise PositionNotActive(
                f"Position is not active: {position.status.value}",
                position_id=position_id,
                status=position.status.value,
            )
        if not position.is_liquidatable(self.liquidation_threshold):
            raise NotLiquidatable(
                f"Position is not liquidatable. Health factor: {position.health_factor}",
                position_id=position_id,
                health_factor=position.health_factor,
            )
        return position

    async def _plan(self, position: Position, pool: Pool, requested: Decimal | None) -> dict:
        total_debt = position.debt_amount
        debt_to_cover = requested if requested is not None else total_debt
        if debt_to_cover > total_debt:
            raise ExceedsDebt(
                "Debt to cover exceeds total debt",
                total_debt=total_debt,
                requested=debt_to_cover,
            )

        # Bypass the oracle cache: it may still hold the last tick's snapshot.
        prices = await self.oracle.get_prices(
            {position.collateral_asset, position.debt_asset}, fresh=True
        )
        collateral_price = prices[position.collateral_asset]
        debt_price = prices[position.debt_asset]
        bonus_rate = (
            pool.liquidation_bonus if pool.liquidation_bonus is not None else self.default_bonus
        )

        collateral_to_seize, bonus_amount = risk_math.liquidation_seizure(
            debt_to_cover, debt_price, collateral_price, bonus_rate, ctx=self.ctx
        )
        if collateral_to_seize > position.collateral_amount:
            raise InsufficientCollateral(
                "Insufficient collateral to seize",
                available=position.collateral_amount,
                required=collateral_to_seize,
            )

        logger.info(
            "liquidation_planned",
            position_id=position.id,
            debt_to_cover=str(debt_to_cover),
            collateral_price=str(collateral_price),
            debt_price=str(debt_price),
            collateral_to_seize=str(collateral_to_seize),
            bonus_amount=str(bonus_amount),
            is_full=debt_to_cover == total_debt,
        )
        return {
            "debt_to_cover": debt_to_cover,
            "collateral_to_seize": collateral_to_seize,
            "bonus_amount": bonus_amount,
        }

    async def _submit(self, position: Position, debt_to_cover: Decimal, liquidator: str) -> str:
        try:
            return await self.tx_executor.submit_liquidation(
                position.pool_address, position.id, debt_to_cover, liquidator
            )
        except LiquidationEngineError:
            raise
        except Exception as e:
            raise TransactionFailed(
                f"Failed to execute liquidation transaction: {e}", position_id=position.id
            ) from e

    async def _release(self, position_id: str, claim_token: str) -> None:
        try:
            await self.position_repo.release_claim(position_id, claim_token)
        except Exception:
            logger.exception("liquidation_claim_release_failed", position_id=position_id)

    async def _settle(
        self,
        position: Position,
        claim_token: str,
        liquidator: str,
        tx_hash: str,
        plan: dict,
    ) -> LiquidationResult:
        """Persist the outcome of an accepted submission. Nothing here can be rolled back."""
        debt_to_cover = plan["debt_to_cover"]
        collateral_to_seize = plan["collateral_to_seize"]
        bonus_amount = plan["bonus_amount"]

        remaining_debt = self.ctx.subtract(position.debt_amount, debt_to_cover)
        remaining_collateral = self.ctx.subtract(position.collateral_amount, collateral_to_seize)
        is_full = remaining_debt <= self.dust_threshold

        try:
            updated = await self.position_repo.apply_liquidation(
                position.id,
                claim_token,
                collateral_amount=remaining_collateral,
                debt_amount=remaining_debt,
                status=PositionStatus.LIQUIDATED if is_full else PositionStatus.ACTIVE,
                health_factor=None if is_full else position.health_factor,
            )
        except Exception as e:
            self._log_reconciliation(position.id, tx_hash, plan, "position_update", error=str(e))
            raise ReconciliationRequired(
                "Liquidation submitted but position update failed",
                position_id=position.id,
                transaction_hash=tx_hash,
            ) from e
        if updated is None:
            self._log_reconciliation(position.id, tx_hash, plan, "claim_lost")
            raise ReconciliationRequired(
                "Liquidation submitted but the position claim had expired",
                position_id=position.id,
                transaction_hash=tx_hash,
            )

        try:
            record = await self.liquidation_repo.create(
                {
                    "position_id": position.id,
                    "liquidator_address": liquidator,
                    "transaction_hash": tx_hash,
                    "collateral_seized": collateral_to_seize,
                    "debt_repaid": debt_to_cover,
                    "liquidation_bonus": bonus_amount,
                    "timestamp": datetime.now(timezone.utc),
                }
            )
        except Exception as e:
            self._log_reconciliation(position.id, tx_hash, plan, "liquidation_record", error=str(e))
            raise ReconciliationRequired(
                "Position updated but liquidation record was not persisted",
                position_id=position.id,
                transaction_hash=tx_hash,
            ) from e

        logger.info(
            "liquidation_executed",
            position_id=position.id,
            tx_hash=tx_hash,
            status=updated.status.value,
            remaining_debt=str(remaining_debt),
            remaining_collateral=str(remaining_collateral),
        )
        return LiquidationResult(
            transaction_hash=tx_hash,
            collateral_seized=collateral_to_seize,
            debt_repaid=debt_to_cover,
            bonus_amount=bonus_amount,
            is_full_liquidation=is_full,
            liquidation=record,
            position=updated,
        )

    @staticmethod
    def _log_reconciliation(
        position_id: str, tx_hash: str, plan: dict, stage: str, error: str | None = None
    ) -> None:
        logger.critical(
            "liquidation_reconciliation_required",
            position_id=position_id,
            tx_hash=tx_hash,
            stage=stage,
            debt_repaid=str(plan["debt_to_cover"]),
            collateral_seized=str(plan["collateral_to_seize"]),
            bonus_amount=str(plan["bonus_amount"]),
            error=error,
        )
