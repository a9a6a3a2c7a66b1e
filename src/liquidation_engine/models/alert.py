"""Severity tiers, AlertEvent, HealthCheckResult Pydantic models."""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field


class Severity(str, enum.Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    LIQUIDATABLE = "liquidatable"


class AlertEvent(BaseModel):
    position_id: str
    severity: Severity
    health_factor: Decimal
    threshold: Decimal
    user_id: str = ""
    pool_address: str = ""
    collateral_asset: str = ""
    debt_asset: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HealthCheckResult(BaseModel):
    position_id: str
    severity: Severity = Severity.HEALTHY
    health_factor: Decimal | None = None
    alert_issued: bool = False
