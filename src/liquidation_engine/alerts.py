"""Alert delivery: payload formatting per severity tier and the Redis sink."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

from liquidation_engine.models.alert import AlertEvent, Severity
from liquidation_engine.models.messages import PositionAlertMessage

if TYPE_CHECKING:
    from liquidation_engine.redis_client import RedisClient

logger = structlog.get_logger()

ALERT_TEMPLATES: dict[Severity, dict] = {
    Severity.WARNING: {
        "title": "Position Health Warning",
        "message": (
            "Your {pair} position health factor is {hf}. "
            "Consider adding collateral or repaying debt."
        ),
        "priority": "medium",
        "channels": ["in_app", "email", "push"],
    },
    Severity.CRITICAL: {
        "title": "CRITICAL: Position Near Liquidation",
        "message": (
            "URGENT: Your {pair} position health factor is {hf}. "
            "Immediate action required!"
        ),
        "priority": "critical",
        "channels": ["in_app", "email", "push", "sms"],
    },
    Severity.LIQUIDATABLE: {
        "title": "LIQUIDATION ALERT: Position Liquidatable",
        "message": "LIQUIDATION: Your {pair} position (HF: {hf}) is now liquidatable!",
        "priority": "critical",
        "channels": ["in_app", "email", "push", "sms"],
    },
}


class AlertSink(Protocol):
    async def emit(self, event: AlertEvent) -> None: ...


def build_alert_payload(event: AlertEvent) -> dict:
    """Render title/message/priority/channels for an alert event."""
    template = ALERT_TEMPLATES.get(event.severity)
    if template is None:
        raise ValueError(f"No alert template for severity {event.severity.value}")
    pair = f"{event.collateral_asset}-{event.debt_asset}"
    hf = f"{event.health_factor:.4f}"
    return {
        "position_id": event.position_id,
        "user_id": event.user_id,
        "severity": event.severity.value,
        "title": template["title"],
        "message": template["message"].format(pair=pair, hf=hf),
        "priority": template["priority"],
        "channels": list(template["channels"]),
    }


class RedisAlertSink:
    """Publishes PositionAlertMessage to the alert stream for the notifier."""

    def __init__(self, redis: RedisClient, stream: str = "risk:alerts") -> None:
        self.redis = redis
        self.stream = stream

    async def emit(self, event: AlertEvent) -> None:
        msg = PositionAlertMessage(
            payload=build_alert_payload(event),
            metadata={
                "position_id": event.position_id,
                "pool_address": event.pool_address,
                "collateral_asset": event.collateral_asset,
                "debt_asset": event.debt_asset,
                "health_factor": str(event.health_factor),
                "threshold": str(event.threshold),
                "alert_level": event.severity.value,
            },
        )
        await self.redis.publish(self.stream, msg)
        logger.info(
            "position_alert_published",
            position_id=event.position_id,
            severity=event.severity.value,
        )
