"""Position, Pool Pydantic models."""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field


class PositionStatus(str, enum.Enum):
    ACTIVE = "active"
    LIQUIDATED = "liquidated"
    CLOSED = "closed"


class Position(BaseModel):
    id: str
    user_id: str = ""
    pool_address: str = ""
    collateral_asset: str = ""
    debt_asset: str = ""
    collateral_amount: Decimal = Decimal("0")
    debt_amount: Decimal = Decimal("0")
    health_factor: Decimal | None = None  # None = no debt (infinite)
    status: PositionStatus = PositionStatus.ACTIVE
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def has_debt(self) -> bool:
        return self.debt_amount > 0

    def is_liquidatable(self, threshold: Decimal = Decimal("1.0")) -> bool:
        """Strict ``<``: a health factor of exactly 1.0 is still safe."""
        return self.health_factor is not None and self.health_factor < threshold


class Pool(BaseModel):
    pool_address: str
    collateral_asset: str = ""
    debt_asset: str = ""
    max_ltv: Decimal = Decimal("0")
    liquidation_threshold: Decimal
    liquidation_bonus: Decimal | None = None
    is_active: bool = True
