"""Health-factor severity tiers.

| Tier         | Rule                  | Default |
|--------------|-----------------------|---------|
| liquidatable | hf < liquidation      | 1.0     |
| critical     | hf < critical         | 1.05    |
| warning      | hf < warning          | 1.2     |
| healthy      | otherwise / no debt   |         |

Checked worst-first, so a position is reported only at its worst tier.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, model_validator

from liquidation_engine.models.alert import Severity

if TYPE_CHECKING:
    from liquidation_engine.config import Settings


class SeverityThresholds(BaseModel):
    liquidation: Decimal = Decimal("1.0")
    critical: Decimal = Decimal("1.05")
    warning: Decimal = Decimal("1.2")

    @model_validator(mode="after")
    def _ordered(self) -> SeverityThresholds:
        if not (Decimal("0") < self.liquidation <= self.critical <= self.warning):
            raise ValueError("thresholds must satisfy 0 < liquidation <= critical <= warning")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> SeverityThresholds:
        return cls(
            liquidation=settings.LIQUIDATION_THRESHOLD,
            critical=settings.CRITICAL_THRESHOLD,
            warning=settings.WARNING_THRESHOLD,
        )

    def for_tier(self, severity: Severity) -> Decimal | None:
        return {
            Severity.LIQUIDATABLE: self.liquidation,
            Severity.CRITICAL: self.critical,
            Severity.WARNING: self.warning,
        }.get(severity)


def classify(health_factor: Decimal | None, thresholds: SeverityThresholds) -> Severity:
    """Map a health factor to its tier. ``None`` (no debt) is always healthy."""
    if health_factor is None:
        return Severity.HEALTHY
    if health_factor < thresholds.liquidation:
        return Severity.LIQUIDATABLE
    if health_factor < thresholds.critical:
        return Severity.CRITICAL
    if health_factor < thresholds.warning:
        return Severity.WARNING
    return Severity.HEALTHY
