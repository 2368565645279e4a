"""
REST API client for the Radar Relay v2 API.

Provides async access to market metadata and the off-chain order relay.
Submitting an order is a two-step exchange with the relayer:

    1. POST /markets/{id}/order/limit returns an unsigned 0x order
    2. the order is signed locally and POSTed to /orders

Neither step touches the blockchain.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
from collections import deque
from typing import Any, Optional

import aiohttp

from .models import Market, OrderAck, OrderRequest
from .signer import OrderSigner

logger = logging.getLogger(__name__)


class RelayAPIError(Exception):
    """Base exception for relayer API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(RelayAPIError):
    """Relayer answered 429."""
    pass


class RadarRestClient:
    """
    Async REST client for the relayer.

    Calls share a sliding one-second rate window. Transient failures are
    retried with exponential backoff; client errors are not.

    Usage:
        async with RadarRestClient("https://api.kovan.radarrelay.com/v2") as client:
            market = await client.get_market("ZRX-WETH")
            ack = await client.submit_limit_order(market.pair_id, order, signer)
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit: int = 5,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Args:
            base_url: Relayer API root, without trailing slash
            session: Shared aiohttp session; one is created on first use if omitted
            rate_limit: Requests allowed in any one-second window
            timeout: Total timeout per request, in seconds
            max_retries: Attempts per call for retryable failures
            retry_delay: First backoff delay; doubles on each attempt
        """
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

        self._window: deque[float] = deque(maxlen=max(1, rate_limit))
        self._window_lock = asyncio.Lock()

    async def __aenter__(self) -> "RadarRestClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _throttle(self) -> None:
        """Hold the caller until a slot in the one-second window frees up."""
        async with self._window_lock:
            if len(self._window) == self._window.maxlen:
                elapsed = time.monotonic() - self._window[0]
                if elapsed < 1.0:
                    await asyncio.sleep(1.0 - elapsed)
            self._window.append(time.monotonic())

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send one API call, retrying transient failures.

        429s, 5xx responses, timeouts and connection errors are retried with
        exponential backoff. Any other 4xx is raised at once.

        Args:
            method: HTTP method
            path: Path below the API root, e.g. "/markets/ZRX-WETH"
            **kwargs: Passed through to aiohttp (json=, params=, ...)

        Returns:
            Parsed JSON body, or None when the body is empty

        Raises:
            RelayAPIError: On a client error, bad JSON, or once retries run out
        """
        session = self._ensure_session()
        url = f"{self._base_url}{path}"
        last_error: Optional[RelayAPIError] = None

        for attempt in range(1, self._max_retries + 1):
            await self._throttle()
            try:
                async with session.request(method, url, **kwargs) as response:
                    body = await response.text()
                    status = response.status
            except asyncio.TimeoutError:
                last_error = RelayAPIError(f"{method} {path} timed out")
            except aiohttp.ClientError as e:
                last_error = RelayAPIError(f"{method} {path} failed: {e}")
            else:
                if status == 429:
                    last_error = RateLimitError("Rate limit exceeded", status_code=429)
                elif status >= 500:
                    last_error = RelayAPIError(
                        f"Server error {status} on {path}: {body}", status_code=status
                    )
                elif status >= 400:
                    raise RelayAPIError(f"API error {status} on {path}: {body}", status_code=status)
                elif not body.strip():
                    return None
                else:
                    try:
                        return json.loads(body)
                    except json.JSONDecodeError as e:
                        raise RelayAPIError(f"Invalid JSON from {path}: {e}") from e

            if attempt < self._max_retries:
                delay = self._retry_delay * (2 ** (attempt - 1))
                if isinstance(last_error, RateLimitError):
                    delay *= 2
                logger.warning(f"{last_error}; retry {attempt}/{self._max_retries - 1} in {delay}s")
                await asyncio.sleep(delay)

        raise last_error or RelayAPIError(f"{method} {path} failed")

    # =========================================================================
    # Markets
    # =========================================================================

    async def get_market(self, pair_id: str) -> Market:
        """
        Fetch a market snapshot.

        Args:
            pair_id: Market id, e.g. "ZRX-WETH"

        Returns:
            Market with base and quote token addresses
        """
        data = await self._request("GET", f"/markets/{pair_id}")
        if not isinstance(data, dict):
            raise RelayAPIError(f"Unexpected market response for {pair_id}: {data!r}")
        try:
            return Market.from_api(data)
        except ValueError as e:
            raise RelayAPIError(str(e)) from e

    # =========================================================================
    # Orders
    # =========================================================================

    async def create_limit_order(self, pair_id: str, order: OrderRequest) -> dict[str, Any]:
        """
        Ask the relayer to build an unsigned 0x order.

        Returns:
            Unsigned order fields (amounts, asset data, fee recipient, ...)
        """
        data = await self._request(
            "POST",
            f"/markets/{pair_id}/order/limit",
            json=order.to_api(),
        )
        if not isinstance(data, dict):
            raise RelayAPIError(f"Unexpected unsigned order response: {data!r}")
        return data

    async def post_order(self, signed_order: dict[str, Any]) -> Any:
        """Submit a signed order to the relay."""
        return await self._request("POST", "/orders", json=signed_order)

    async def submit_limit_order(
        self,
        pair_id: str,
        order: OrderRequest,
        signer: OrderSigner,
    ) -> OrderAck:
        """
        Build, sign and submit a limit order.

        Returns as soon as the relayer accepts the order; fills and
        book confirmation are observed elsewhere.

        Args:
            pair_id: Market id
            order: The order to place
            signer: Signs on behalf of the maker address

        Returns:
            OrderAck with the order hash if the relayer returned one
        """
        unsigned = await self.create_limit_order(pair_id, order)
        unsigned["makerAddress"] = signer.address.lower()
        unsigned["expirationTimeSeconds"] = str(order.expiration)
        unsigned.setdefault("salt", str(secrets.randbits(256)))

        signed = signer.sign_order(unsigned)
        response = await self.post_order(signed)

        order_hash = None
        if isinstance(response, dict):
            order_hash = response.get("orderHash")

        logger.info(
            f"Submitted {order.side.value} {order.size} @ {order.price} on {pair_id} "
            f"(expires {order.expiration})"
        )
        return OrderAck(order_hash=order_hash, request=order, signed_order=signed)
