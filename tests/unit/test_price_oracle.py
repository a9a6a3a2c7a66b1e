"""Unit tests for HttpPriceOracle: batch fetch, TTL cache, staleness."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from liquidation_engine.config import Settings
from liquidation_engine.errors import PriceUnavailable
from liquidation_engine.price_oracle import HttpPriceOracle

NOW = 1_760_000_000.0


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def oracle(clock):
    return HttpPriceOracle(Settings(PRICE_FEED_URL="http://feed.test/"), clock=clock)


def _patched_http(payload: dict | None = None, error: Exception | None = None):
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.json.return_value = payload
    mock_response.raise_for_status = MagicMock(side_effect=error)

    mock_http = AsyncMock()
    mock_http.get = AsyncMock(return_value=mock_response)
    mock_http.__aenter__ = AsyncMock(return_value=mock_http)
    mock_http.__aexit__ = AsyncMock(return_value=False)
    return mock_http


def _quotes(**prices) -> dict:
    return {
        "prices": {
            symbol: {"price": price, "last_updated": NOW - 10} for symbol, price in prices.items()
        }
    }


# ---------------------------------------------------------------------------
# get_prices()
# ---------------------------------------------------------------------------


class TestGetPrices:
    async def test_batch_fetch(self, oracle):
        mock_http = _patched_http(_quotes(ETH="2500.5", USDC="1"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            prices = await oracle.get_prices({"ETH", "USDC"})

        assert prices == {"ETH": Decimal("2500.5"), "USDC": Decimal("1")}
        mock_http.get.assert_awaited_once()
        args, kwargs = mock_http.get.call_args
        assert args[0] == "http://feed.test/v1/prices"
        assert kwargs["params"] == {"symbols": "ETH,USDC"}

    async def test_empty_request_skips_http(self, oracle):
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            assert await oracle.get_prices(set()) == {}
            MockHttpx.assert_not_called()

    async def test_cache_hit_within_ttl(self, oracle, clock):
        mock_http = _patched_http(_quotes(ETH="2500"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            await oracle.get_prices({"ETH"})
            clock.now += 30
            await oracle.get_prices({"ETH"})

        assert mock_http.get.await_count == 1

    async def test_cache_expires_after_ttl(self, oracle, clock):
        mock_http = _patched_http(_quotes(ETH="2500"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            await oracle.get_prices({"ETH"})
            clock.now += 61
            mock_http.get.return_value.json.return_value = {
                "prices": {"ETH": {"price": "2400", "last_updated": clock.now}}
            }
            prices = await oracle.get_prices({"ETH"})

        assert mock_http.get.await_count == 2
        assert prices["ETH"] == Decimal("2400")

    async def test_fresh_bypasses_warm_cache_and_refills_it(self, oracle, clock):
        mock_http = _patched_http(_quotes(ETH="2500"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            await oracle.get_prices({"ETH"})
            clock.now += 5
            mock_http.get.return_value.json.return_value = _quotes(ETH="2100")

            fresh = await oracle.get_prices({"ETH"}, fresh=True)
            cached = await oracle.get_prices({"ETH"})

        assert fresh["ETH"] == Decimal("2100")
        assert cached["ETH"] == Decimal("2100")
        assert mock_http.get.await_count == 2

    async def test_clear_cache(self, oracle):
        mock_http = _patched_http(_quotes(ETH="2500"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            await oracle.get_prices({"ETH"})
            oracle.clear_cache()
            await oracle.get_prices({"ETH"})

        assert mock_http.get.await_count == 2


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_missing_symbol_fails_whole_call(self, oracle):
        mock_http = _patched_http(_quotes(ETH="2500"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(PriceUnavailable) as exc:
                await oracle.get_prices({"ETH", "USDC"})
        assert exc.value.details["symbol"] == "USDC"

    @pytest.mark.parametrize("price", ["0", "-3", "garbage", None])
    async def test_bad_price_rejected(self, oracle, price):
        mock_http = _patched_http(_quotes(ETH=price))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(PriceUnavailable):
                await oracle.get_prices({"ETH"})

    async def test_stale_price_rejected(self, oracle):
        payload = {"prices": {"ETH": {"price": "2500", "last_updated": NOW - 301}}}
        mock_http = _patched_http(payload)
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(PriceUnavailable) as exc:
                await oracle.get_prices({"ETH"})
        assert exc.value.details["age_seconds"] == 301

    async def test_http_status_error(self, oracle):
        error = httpx.HTTPStatusError(
            "server error", request=MagicMock(), response=MagicMock(status_code=503)
        )
        mock_http = _patched_http(error=error)
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.return_value = mock_http
            with pytest.raises(PriceUnavailable):
                await oracle.get_prices({"ETH"})
        # Status errors are not retried.
        assert mock_http.get.await_count == 1

    async def test_failed_fetch_not_cached(self, oracle):
        bad = _patched_http({"prices": {}})
        good = _patched_http(_quotes(ETH="2500"))
        with patch("liquidation_engine.price_oracle.httpx.AsyncClient") as MockHttpx:
            MockHttpx.side_effect = [bad, good]
            with pytest.raises(PriceUnavailable):
                await oracle.get_prices({"ETH"})
            prices = await oracle.get_prices({"ETH"})
        assert prices["ETH"] == Decimal("2500")
