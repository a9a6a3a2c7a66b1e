"""Entry point: start the position monitor."""

import asyncio
import signal
import sys

import structlog

from liquidation_engine.alerts import RedisAlertSink
from liquidation_engine.config import Settings
from liquidation_engine.db.engine import create_db_engine, create_session_factory
from liquidation_engine.db.repository import PoolRepository, PositionRepository
from liquidation_engine.position_monitor import PositionMonitor
from liquidation_engine.price_oracle import HttpPriceOracle
from liquidation_engine.redis_client import RedisClient
from liquidation_engine.risk_math import make_context
from liquidation_engine.severity import SeverityThresholds

logger = structlog.get_logger()


async def main() -> None:
    settings = Settings()
    ctx = make_context(settings.DECIMAL_PRECISION)

    redis = RedisClient(
        redis_url=settings.REDIS_URL,
        socket_timeout=30.0,
        socket_connect_timeout=10.0,
        retry_on_timeout=True,
    )
    await redis.connect()

    engine = create_db_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )
    session_factory = create_session_factory(engine)

    monitor = PositionMonitor(
        position_repo=PositionRepository(session_factory),
        pool_repo=PoolRepository(session_factory),
        oracle=HttpPriceOracle(settings),
        alert_sink=RedisAlertSink(redis, stream=settings.ALERT_STREAM),
        thresholds=SeverityThresholds.from_settings(settings),
        interval_seconds=settings.MONITOR_INTERVAL_SECONDS,
        tick_timeout_seconds=settings.MONITOR_TICK_TIMEOUT_SECONDS,
        run_on_start=settings.MONITOR_RUN_ON_START,
        ctx=ctx,
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        shutdown.set()

    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _signal_handler)
    else:
        signal.signal(signal.SIGINT, lambda *_: _signal_handler())

    try:
        monitor.start()
        await shutdown.wait()
    except asyncio.CancelledError:
        pass
    finally:
        await monitor.stop()
        await redis.disconnect()
        await engine.dispose()
        logger.info("shutdown_complete")


if __name__ == "__main__":
    asyncio.run(main())
