"""USD price lookup over the price-feed HTTP API, with TTL cache and staleness checks."""

from __future__ import annotations

import time
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from liquidation_engine.errors import InvalidInput, PriceUnavailable
from liquidation_engine.risk_math import ZERO, to_decimal

if TYPE_CHECKING:
    from liquidation_engine.config import Settings

logger = structlog.get_logger()


class PriceOracle(Protocol):
    async def get_prices(
        self, symbols: set[str], fresh: bool = False
    ) -> dict[str, Decimal]: ...


class HttpPriceOracle:
    """
    Batch price client for the price-feed service.

    Response shape of ``GET {PRICE_FEED_URL}/v1/prices?symbols=ETH,USDC``::

        {"prices": {"ETH": {"price": "2500.12", "last_updated": 1760000000}}}

    ``get_prices`` is all-or-nothing: any symbol that is missing, non-positive
    or older than the staleness tolerance fails the whole call.
    """

    def __init__(self, settings: Settings, clock=time.time) -> None:
        self.settings = settings
        self._clock = clock
        # symbol -> (price, cached_at)
        self._cache: dict[str, tuple[Decimal, float]] = {}

    async def get_prices(self, symbols: set[str], fresh: bool = False) -> dict[str, Decimal]:
        """Prices for ``symbols``. ``fresh=True`` bypasses the cache but still refills it."""
        wanted = {s for s in symbols if s}
        if not wanted:
            return {}

        prices: dict[str, Decimal] = {}
        missing: set[str] = set()
        for symbol in wanted:
            cached = None if fresh else self._get_cached(symbol)
            if cached is None:
                missing.add(symbol)
            else:
                prices[symbol] = cached

        if missing:
            fetched = await self._fetch(missing)
            for symbol, price in fetched.items():
                self._cache[symbol] = (price, self._clock())
                prices[symbol] = price

        logger.debug(
            "prices_resolved",
            symbols=sorted(wanted),
            cache_hits=len(wanted) - len(missing),
            fresh=fresh,
        )
        return prices

    def clear_cache(self) -> None:
        self._cache.clear()

    def _get_cached(self, symbol: str) -> Decimal | None:
        entry = self._cache.get(symbol)
        if entry is None:
            return None
        price, cached_at = entry
        if self._clock() - cached_at > self.settings.PRICE_CACHE_TTL_SECONDS:
            del self._cache[symbol]
            return None
        return price

    async def _fetch(self, symbols: set[str]) -> dict[str, Decimal]:
        try:
            raw = await self._call_api_with_retry(sorted(symbols))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("price_feed_error", symbols=sorted(symbols), error=str(e))
            raise PriceUnavailable(
                "price feed request failed", symbols=sorted(symbols), error=str(e)
            ) from e

        quotes = raw.get("prices") or {}
        now = self._clock()
        result: dict[str, Decimal] = {}
        for symbol in symbols:
            quote = quotes.get(symbol)
            if not quote:
                raise PriceUnavailable(f"no price for {symbol}", symbol=symbol)
            try:
                price = to_decimal(quote.get("price"), f"price[{symbol}]")
            except InvalidInput as e:
                raise PriceUnavailable(f"malformed price for {symbol}", symbol=symbol) from e
            if price <= ZERO:
                raise PriceUnavailable(f"non-positive price for {symbol}", symbol=symbol, price=price)
            updated = quote.get("last_updated")
            if updated is not None:
                try:
                    age = now - float(updated)
                except (TypeError, ValueError) as e:
                    raise PriceUnavailable(
                        f"malformed timestamp for {symbol}", symbol=symbol
                    ) from e
                if age > self.settings.PRICE_STALENESS_TOLERANCE_SECONDS:
                    raise PriceUnavailable(
                        f"stale price for {symbol}", symbol=symbol, age_seconds=int(age)
                    )
            result[symbol] = price
        return result

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _call_api_with_retry(self, symbols: list[str]) -> dict:
        """Low-level HTTP GET with retry on transport errors."""
        headers = {}
        if self.settings.PRICE_FEED_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.PRICE_FEED_API_KEY}"
        async with httpx.AsyncClient() as http:
            response = await http.get(
                f"{self.settings.PRICE_FEED_URL.rstrip('/')}/v1/prices",
                params={"symbols": ",".join(symbols)},
                headers=headers,
                timeout=10.0,
            )
            response.raise_for_status()
            return response.json()
