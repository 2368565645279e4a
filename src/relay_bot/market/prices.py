"""
USD price tickers and the derived exchange rate.

Each ticker endpoint returns a JSON array whose first element carries a
"price_usd" field, e.g.:

    [{"id": "ethereum", "symbol": "ETH", "price_usd": "200.00", ...}]

The rate used to price the order is quote_usd / base_usd. A fresh quote is
taken once per session; there is no caching and no retry.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from .models import ExchangeRate

logger = logging.getLogger(__name__)


class RateUnavailableError(Exception):
    """Raised when a price quote cannot be fetched or parsed."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class PriceFeedClient:
    """
    Fetches USD quotes from ticker endpoints.

    Usage:
        async with PriceFeedClient() as feed:
            rate = await feed.compute_rate(eth_url, zrx_url)
            print(rate.rate)
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 15.0,
    ):
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> "PriceFeedClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _get_json(self, url: str) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        try:
            async with self._session.get(url) as response:
                if response.status != 200:
                    raise RateUnavailableError(
                        f"Ticker returned HTTP {response.status}", url=url
                    )
                return await response.json(content_type=None)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RateUnavailableError(f"Ticker request failed: {e}", url=url) from e

    async def fetch_usd_price(self, url: str) -> Decimal:
        """
        Fetch one USD price.

        Raises:
            RateUnavailableError: On HTTP failure or a malformed/non-numeric price
        """
        data = await self._get_json(url)
        return parse_usd_price(data, url)

    async def compute_rate(self, base_url: str, quote_url: str) -> ExchangeRate:
        """
        Fetch both quotes concurrently and derive the exchange rate.

        Args:
            base_url: Ticker for the asset prices are expressed in (ETH)
            quote_url: Ticker for the traded asset (ZRX)

        Returns:
            ExchangeRate with rate = quote_usd / base_usd
        """
        base_usd, quote_usd = await asyncio.gather(
            self.fetch_usd_price(base_url),
            self.fetch_usd_price(quote_url),
        )
        rate = ExchangeRate(base_usd=base_usd, quote_usd=quote_usd)
        logger.debug(f"Rate: {quote_usd} / {base_usd} = {rate.rate}")
        return rate


def parse_usd_price(data: Any, url: Optional[str] = None) -> Decimal:
    """Extract a positive USD price from a ticker payload."""
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise RateUnavailableError("Ticker payload is not a non-empty array", url=url)

    raw = data[0].get("price_usd")
    if raw is None or raw == "":
        raise RateUnavailableError("Ticker payload has no price_usd", url=url)

    try:
        price = Decimal(str(raw))
    except InvalidOperation:
        raise RateUnavailableError(f"Non-numeric price_usd: {raw!r}", url=url)

    if not price.is_finite() or price <= 0:
        raise RateUnavailableError(f"Unusable price_usd: {raw!r}", url=url)
    return price
