"""LiquidationRecord, LiquidationOpportunity, LiquidationResult Pydantic models."""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field

from liquidation_engine.models.position import Position


class LiquidationRecord(BaseModel):
    id: str = ""
    position_id: str
    liquidator_address: str
    transaction_hash: str
    collateral_seized: Decimal
    debt_repaid: Decimal
    liquidation_bonus: Decimal
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LiquidationOpportunity(BaseModel):
    position_id: str
    user_id: str = ""
    pool_address: str = ""
    collateral_asset: str = ""
    debt_asset: str = ""
    collateral_amount: Decimal = Decimal("0")
    debt_amount: Decimal = Decimal("0")
    health_factor: Decimal | None = None
    collateral_price: Decimal = Decimal("0")
    debt_price: Decimal = Decimal("0")
    collateral_value: Decimal = Decimal("0")
    debt_value: Decimal = Decimal("0")
    liquidation_bonus: Decimal = Decimal("0")
    estimated_profit: Decimal = Decimal("0")


class LiquidationResult(BaseModel):
    transaction_hash: str
    collateral_seized: Decimal
    debt_repaid: Decimal
    bonus_amount: Decimal
    is_full_liquidation: bool
    liquidation: LiquidationRecord
    position: Position
