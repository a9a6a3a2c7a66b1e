"""TickResult, MonitorStats Pydantic models."""

from datetime import datetime

from pydantic import BaseModel


class TickResult(BaseModel):
    success: bool = True
    positions_checked: int = 0
    warnings: int = 0
    critical_alerts: int = 0
    liquidation_alerts: int = 0
    errors: int = 0
    duration_ms: int = 0


class MonitorStats(BaseModel):
    total_runs: int = 0
    positions_checked: int = 0
    warnings_issued: int = 0
    critical_alerts_issued: int = 0
    liquidation_alerts_issued: int = 0
    errors: int = 0
    last_run_time: datetime | None = None
