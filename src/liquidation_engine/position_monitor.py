"""Periodic health-factor sweep over all active positions, with severity alerts."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from decimal import Context
from typing import TYPE_CHECKING

import structlog

from liquidation_engine import risk_math
from liquidation_engine.errors import PoolNotFound, PriceUnavailable
from liquidation_engine.models.alert import AlertEvent, HealthCheckResult, Severity
from liquidation_engine.models.monitor import MonitorStats, TickResult
from liquidation_engine.severity import SeverityThresholds, classify

if TYPE_CHECKING:
    from liquidation_engine.alerts import AlertSink
    from liquidation_engine.db.repository import PoolRepository, PositionRepository
    from liquidation_engine.models.position import Pool, Position
    from liquidation_engine.price_oracle import PriceOracle

logger = structlog.get_logger()


class PositionMonitor:
    """
    Background task that re-evaluates every active position each tick:

    1. load active positions, worst stored health factor first
    2. one oracle call for every symbol referenced by an indebted position
    3. recompute + persist health factor, classify, alert (one per position)

    A failure on one position is counted and skipped. An oracle failure
    abandons the tick; the previous health factors stay in place.
    """

    def __init__(
        self,
        position_repo: PositionRepository,
        pool_repo: PoolRepository,
        oracle: PriceOracle,
        alert_sink: AlertSink,
        thresholds: SeverityThresholds | None = None,
        interval_seconds: float = 60.0,
        tick_timeout_seconds: float = 45.0,
        run_on_start: bool = True,
        ctx: Context = risk_math.DEFAULT_CONTEXT,
    ) -> None:
        self.position_repo = position_repo
        self.pool_repo = pool_repo
        self.oracle = oracle
        self.alert_sink = alert_sink
        self.thresholds = thresholds or SeverityThresholds()
        self.interval_seconds = interval_seconds
        self.tick_timeout_seconds = tick_timeout_seconds
        self.run_on_start = run_on_start
        self.ctx = ctx
        self.stats = MonitorStats()
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the monitor background task."""
        if self._running:
            logger.info("position_monitor_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "position_monitor_started",
            interval_seconds=self.interval_seconds,
            warning=str(self.thresholds.warning),
            critical=str(self.thresholds.critical),
            liquidation=str(self.thresholds.liquidation),
        )

    async def stop(self) -> None:
        """Stop the monitor and cancel the background task."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("position_monitor_stopped", stats=self.stats.model_dump(mode="json"))

    def get_stats(self) -> dict:
        return {
            "is_running": self._running,
            "last_run_time": self.stats.last_run_time,
            "interval_seconds": self.interval_seconds,
            "thresholds": {
                "warning": self.thresholds.warning,
                "critical": self.thresholds.critical,
                "liquidation": self.thresholds.liquidation,
            },
            "stats": self.stats.model_copy(),
        }

    def reset_stats(self) -> None:
        self.stats = MonitorStats()
        logger.info("position_monitor_stats_reset")

    async def _run_loop(self) -> None:
        """Fixed-rate loop: the next tick is due ``interval_seconds`` after the last one began."""
        if not self.run_on_start:
            await asyncio.sleep(self.interval_seconds)
        while self._running:
            started = time.monotonic()
            try:
                await asyncio.wait_for(self.tick(), timeout=self.tick_timeout_seconds)
            except asyncio.CancelledError:
                break
            except asyncio.TimeoutError:
                self.stats.errors += 1
                logger.error("position_monitor_tick_timeout", timeout=self.tick_timeout_seconds)
            except Exception:
                self.stats.errors += 1
                logger.exception("position_monitor_tick_error")

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self.interval_seconds - elapsed))

    async def tick(self) -> TickResult:
        """Run one sweep over all active positions."""
        started = time.monotonic()
        positions = await self.position_repo.get_active()
        indebted = [p for p in positions if p.has_debt()]

        prices = {}
        pools: dict[str, Pool] = {}
        if indebted:
            symbols = {p.collateral_asset for p in indebted} | {p.debt_asset for p in indebted}
            try:
                prices = await self.oracle.get_prices(symbols)
            except PriceUnavailable as e:
                self.stats.errors += 1
                logger.warning("position_monitor_tick_abandoned", reason=e.message, **e.details)
                return TickResult(
                    success=False,
                    errors=1,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            pools = await self.pool_repo.get_many({p.pool_address for p in indebted})

        result = TickResult()
        for position in positions:
            try:
                check = await self.check_position(position, pools.get(position.pool_address), prices)
            except Exception:
                result.errors += 1
                logger.exception("position_check_failed", position_id=position.id)
                continue
            result.positions_checked += 1
            if not check.alert_issued:
                continue
            if check.severity is Severity.WARNING:
                result.warnings += 1
            elif check.severity is Severity.CRITICAL:
                result.critical_alerts += 1
            elif check.severity is Severity.LIQUIDATABLE:
                result.liquidation_alerts += 1

        result.duration_ms = int((time.monotonic() - started) * 1000)
        self._record(result)
        logger.info("position_monitor_tick_completed", **result.model_dump())
        return result

    async def check_position(
        self,
        position: Position,
        pool: Pool | None,
        prices: dict,
    ) -> HealthCheckResult:
        """Refresh one position's health factor and alert if it falls in a tier."""
        if not position.has_debt():
            if position.health_factor is not None:
                await self.position_repo.update_health_factor(position.id, None)
            return HealthCheckResult(position_id=position.id)

        if pool is None:
            raise PoolNotFound(
                f"Pool not found: {position.pool_address}", pool_address=position.pool_address
            )
        collateral_price = prices.get(position.collateral_asset)
        debt_price = prices.get(position.debt_asset)
        if collateral_price is None or debt_price is None:
            raise PriceUnavailable(
                "price missing from tick snapshot",
                collateral_asset=position.collateral_asset,
                debt_asset=position.debt_asset,
            )

        raw_hf = risk_math.health_factor(
            position.collateral_amount,
            position.debt_amount,
            collateral_price,
            debt_price,
            pool.liquidation_threshold,
            ctx=self.ctx,
        )
        # Classify the value that gets stored so the scanner and executor agree.
        hf = risk_math.quantize_for_storage(raw_hf)
        await self.position_repo.update_health_factor(position.id, hf)

        severity = classify(hf, self.thresholds)
        if severity is Severity.HEALTHY:
            return HealthCheckResult(position_id=position.id, health_factor=hf)

        logger.info(
            "position_at_risk",
            position_id=position.id,
            severity=severity.value,
            health_factor=str(hf),
        )
        delivered = await self._emit_alert(position, severity, hf)
        return HealthCheckResult(
            position_id=position.id,
            severity=severity,
            health_factor=hf,
            alert_issued=delivered,
        )

    async def _emit_alert(self, position: Position, severity: Severity, hf) -> bool:
        """Best-effort delivery; failures are logged and not retried this tick."""
        event = AlertEvent(
            position_id=position.id,
            severity=severity,
            health_factor=hf,
            threshold=self.thresholds.for_tier(severity),
            user_id=position.user_id,
            pool_address=position.pool_address,
            collateral_asset=position.collateral_asset,
            debt_asset=position.debt_asset,
        )
        try:
            await self.alert_sink.emit(event)
        except Exception:
            logger.exception(
                "alert_delivery_failed", position_id=position.id, severity=severity.value
            )
            return False
        return True

    def _record(self, result: TickResult) -> None:
        self.stats.total_runs += 1
        self.stats.positions_checked += result.positions_checked
        self.stats.warnings_issued += result.warnings
        self.stats.critical_alerts_issued += result.critical_alerts
        self.stats.liquidation_alerts_issued += result.liquidation_alerts
        self.stats.errors += result.errors
        self.stats.last_run_time = datetime.now(timezone.utc)
