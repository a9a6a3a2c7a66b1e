"""Submit liquidation intents to the signing relay."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

import httpx
import structlog

from liquidation_engine.errors import TransactionFailed

if TYPE_CHECKING:
    from liquidation_engine.config import Settings

logger = structlog.get_logger()


class TransactionExecutor(Protocol):
    async def submit_liquidation(
        self,
        pool_address: str,
        position_id: str,
        debt_to_cover: Decimal,
        liquidator_address: str,
    ) -> str: ...


class RelayTransactionExecutor:
    """
    POSTs ``{pool_address, position_id, debt_to_cover, liquidator_address}``
    to ``{TX_RELAY_URL}/v1/liquidations`` and returns the ``transaction_hash``
    from the response. The relay owns signing, nonces and broadcast.

    Submissions are never retried here: a timeout does not prove the relay
    did not broadcast.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def submit_liquidation(
        self,
        pool_address: str,
        position_id: str,
        debt_to_cover: Decimal,
        liquidator_address: str,
    ) -> str:
        headers = {"Content-Type": "application/json"}
        if self.settings.TX_RELAY_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.TX_RELAY_API_KEY}"
        body = {
            "pool_address": pool_address,
            "position_id": position_id,
            "debt_to_cover": str(debt_to_cover),
            "liquidator_address": liquidator_address,
        }
        try:
            async with httpx.AsyncClient() as http:
                response = await http.post(
                    f"{self.settings.TX_RELAY_URL.rstrip('/')}/v1/liquidations",
                    headers=headers,
                    json=body,
                    timeout=self.settings.TX_TIMEOUT_SECONDS,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "liquidation_tx_rejected",
                position_id=position_id,
                status_code=e.response.status_code,
            )
            raise TransactionFailed(
                "relay rejected liquidation",
                position_id=position_id,
                status_code=e.response.status_code,
                error=e.response.text[:200],
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("liquidation_tx_error", position_id=position_id, error=str(e))
            raise TransactionFailed(
                "liquidation submission failed", position_id=position_id, error=str(e)
            ) from e

        tx_hash = data.get("transaction_hash") if isinstance(data, dict) else None
        if not tx_hash:
            raise TransactionFailed(
                "relay response carried no transaction hash", position_id=position_id
            )
        logger.info("liquidation_tx_submitted", position_id=position_id, tx_hash=tx_hash)
        return tx_hash
