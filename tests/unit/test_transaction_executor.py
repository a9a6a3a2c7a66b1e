"""Unit tests for RelayTransactionExecutor."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from liquidation_engine.config import Settings
from liquidation_engine.errors import TransactionFailed
from liquidation_engine.transaction_executor import RelayTransactionExecutor


@pytest.fixture
def relay():
    return RelayTransactionExecutor(
        Settings(TX_RELAY_URL="http://relay.test", TX_RELAY_API_KEY="relay-key")
    )


def _patched_http(payload=None, post_error: Exception | None = None, status_error=None):
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status = MagicMock(side_effect=status_error)

    mock_http = AsyncMock()
    mock_http.post = AsyncMock(return_value=mock_response, side_effect=post_error)
    mock_http.__aenter__ = AsyncMock(return_value=mock_http)
    mock_http.__aexit__ = AsyncMock(return_value=False)
    return mock_http


class TestSubmitLiquidation:
    async def test_returns_transaction_hash(self, relay):
        mock_http = _patched_http({"transaction_hash": "0xabc"})
        with patch("liquidation_engine.transaction_executor.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            tx_hash = await relay.submit_liquidation("0xpool", "pos-1", Decimal("21000"), "0x12")

        assert tx_hash == "0xabc"
        args, kwargs = mock_http.post.call_args
        assert args[0] == "http://relay.test/v1/liquidations"
        assert kwargs["json"] == {
            "pool_address": "0xpool",
            "position_id": "pos-1",
            "debt_to_cover": "21000",
            "liquidator_address": "0x12",
        }
        assert kwargs["headers"]["Authorization"] == "Bearer relay-key"

    async def test_rejection_raises(self, relay):
        error = httpx.HTTPStatusError(
            "bad request",
            request=MagicMock(),
            response=MagicMock(status_code=400, text="nonce too low"),
        )
        mock_http = _patched_http(status_error=error)
        with patch("liquidation_engine.transaction_executor.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(TransactionFailed) as exc:
                await relay.submit_liquidation("0xpool", "pos-1", Decimal("1"), "0x12")

        assert exc.value.details["status_code"] == 400

    async def test_timeout_not_retried(self, relay):
        mock_http = _patched_http(post_error=httpx.ReadTimeout("timed out"))
        with patch("liquidation_engine.transaction_executor.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(TransactionFailed):
                await relay.submit_liquidation("0xpool", "pos-1", Decimal("1"), "0x12")

        assert mock_http.post.await_count == 1

    async def test_missing_hash_raises(self, relay):
        mock_http = _patched_http({"status": "queued"})
        with patch("liquidation_engine.transaction_executor.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(TransactionFailed):
                await relay.submit_liquidation("0xpool", "pos-1", Decimal("1"), "0x12")
