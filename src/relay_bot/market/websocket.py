"""
WebSocket client for relayer topic subscriptions.

Features:
    - Topic subscriptions scoped to a market (BOOK, TICKER, CANDLE)
    - Closeable subscription handles
    - State change callbacks

A dropped connection is surfaced to every open subscription through its
error callback as a SubscriptionError. There is no automatic reconnect:
events missed while disconnected cannot be replayed, so the caller decides.
An ERROR frame from the relayer (e.g. SUBSCRIBE for an unknown market) fails
the subscriptions it refers to the same way.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .models import Topic

logger = logging.getLogger(__name__)


class WebSocketState(str, Enum):
    """WebSocket connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPING = "stopping"


class SubscriptionError(Exception):
    """Raised when a subscription cannot be opened or its connection drops."""
    pass


# Type aliases for callbacks
MessageCallback = Callable[[Dict[str, Any]], Awaitable[None]]
StateCallback = Callable[[WebSocketState], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]


class Subscription:
    """Handle for one open topic subscription."""

    def __init__(
        self,
        stream: "RelayWebSocket",
        request_id: int,
        topic: Topic,
        market: str,
        on_message: MessageCallback,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._stream = stream
        self.request_id = request_id
        self.topic = topic
        self.market = market
        self.on_message = on_message
        self.on_error = on_error
        self.closed = False

    def matches(self, data: Dict[str, Any]) -> bool:
        """Whether an inbound message belongs to this subscription."""
        if data.get("requestId") == self.request_id:
            return True
        topic = data.get("topic")
        market = data.get("market")
        return topic == self.topic.value and (market is None or market == self.market)

    async def close(self) -> None:
        """Unsubscribe; stops the connection if nothing else is subscribed."""
        if self.closed:
            return
        self.closed = True
        await self._stream.unsubscribe(self)

    def __repr__(self) -> str:
        return f"Subscription({self.topic.value}:{self.market}, closed={self.closed})"


class RelayWebSocket:
    """
    WebSocket client for relayer topics.

    Usage:
        async def handle(message: dict):
            print(message.get("action"))

        ws = RelayWebSocket("wss://ws.kovan.radarrelay.com/v2")
        subscription = await ws.subscribe(Topic.BOOK, "ZRX-WETH", handle)

        # ... later
        await subscription.close()
    """

    def __init__(
        self,
        url: str,
        on_state_change: Optional[StateCallback] = None,
        open_timeout: float = 10.0,
    ):
        """
        Initialize the WebSocket client.

        Args:
            url: Relayer WebSocket endpoint
            on_state_change: Optional callback for connection state changes
            open_timeout: Seconds to wait for the connection handshake
        """
        self._url = url
        self._on_state_change = on_state_change
        self._open_timeout = open_timeout

        self._state = WebSocketState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._subscriptions: Dict[int, Subscription] = {}
        self._request_ids = itertools.count(1)

        self._receive_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> WebSocketState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether currently connected."""
        return self._state == WebSocketState.CONNECTED

    @property
    def subscriptions(self) -> list[Subscription]:
        """Currently open subscriptions."""
        return list(self._subscriptions.values())

    async def _set_state(self, state: WebSocketState) -> None:
        """Update state and notify callback."""
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.debug(f"WebSocket state: {old_state.value} -> {state.value}")

            if self._on_state_change:
                try:
                    await self._on_state_change(state)
                except Exception as e:
                    logger.error(f"Error in state change callback: {e}")

    async def start(self) -> None:
        """
        Connect and start the receive loop.

        Raises:
            SubscriptionError: If the connection cannot be established
        """
        if self._state != WebSocketState.DISCONNECTED:
            return

        self._stop_event.clear()
        await self._set_state(WebSocketState.CONNECTING)

        try:
            self._ws = await websockets.connect(
                self._url,
                open_timeout=self._open_timeout,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )
        except asyncio.CancelledError:
            await self._set_state(WebSocketState.DISCONNECTED)
            raise
        except Exception as e:
            await self._set_state(WebSocketState.DISCONNECTED)
            raise SubscriptionError(f"Failed to connect to {self._url}: {e}") from e

        await self._set_state(WebSocketState.CONNECTED)
        logger.info(f"Connected to {self._url}")
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def stop(self) -> None:
        """Close the connection and cancel the receive loop."""
        if self._state == WebSocketState.DISCONNECTED:
            return

        await self._set_state(WebSocketState.STOPPING)
        self._stop_event.set()

        if self._receive_task and self._receive_task is not asyncio.current_task():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
        self._receive_task = None

        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")
            self._ws = None

        self._subscriptions.clear()
        await self._set_state(WebSocketState.DISCONNECTED)
        logger.debug("WebSocket client stopped")

    async def subscribe(
        self,
        topic: Topic,
        market: str,
        on_message: MessageCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Subscribe to a topic for one market, connecting first if needed.

        Args:
            topic: Relayer topic
            market: Market id, e.g. "ZRX-WETH"
            on_message: Called with every decoded message for this subscription
            on_error: Called with a SubscriptionError if the connection drops

        Returns:
            Subscription handle; close() it when done
        """
        await self.start()

        subscription = Subscription(
            stream=self,
            request_id=next(self._request_ids),
            topic=topic,
            market=market,
            on_message=on_message,
            on_error=on_error,
        )
        self._subscriptions[subscription.request_id] = subscription

        try:
            await self._send({
                "type": "SUBSCRIBE",
                "topic": topic.value,
                "market": market,
                "requestId": subscription.request_id,
            })
        except Exception as e:
            self._subscriptions.pop(subscription.request_id, None)
            raise SubscriptionError(f"Failed to subscribe to {topic.value}:{market}: {e}") from e

        logger.info(f"Subscribed to {topic.value} for {market}")
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription; stop the connection once none remain."""
        if self._subscriptions.pop(subscription.request_id, None) is None:
            return

        if self.is_connected:
            try:
                await self._send({
                    "type": "UNSUBSCRIBE",
                    "topic": subscription.topic.value,
                    "market": subscription.market,
                    "requestId": subscription.request_id,
                })
            except Exception as e:
                logger.debug(f"Unsubscribe not sent: {e}")

        if not self._subscriptions:
            await self.stop()

    async def _send(self, message: Dict[str, Any]) -> None:
        if not self._ws:
            raise SubscriptionError("WebSocket is not connected")
        await self._ws.send(json.dumps(message))

    async def _receive_loop(self) -> None:
        """Receive messages until stopped or the connection drops."""
        error: Optional[Exception] = None
        try:
            while not self._stop_event.is_set() and self._ws:
                message = await self._ws.recv()
                await self._handle_message(message)

        except asyncio.CancelledError:
            logger.debug("Receive loop cancelled")
            raise

        except ConnectionClosedOK as e:
            if not self._stop_event.is_set():
                error = SubscriptionError(f"WebSocket closed by server: {e}")

        except ConnectionClosed as e:
            error = SubscriptionError(f"WebSocket connection lost: {e}")

        except Exception as e:
            error = SubscriptionError(f"Error in receive loop: {e}")

        if error and not self._stop_event.is_set():
            logger.error(str(error))
            await self._notify_error(error)
            if self._ws:
                try:
                    await self._ws.close()
                except Exception as e:
                    logger.debug(f"Error closing dropped WebSocket: {e}")
                self._ws = None
            await self._set_state(WebSocketState.DISCONNECTED)

    async def _handle_error_message(self, data: Dict[str, Any]) -> None:
        """
        Fail the subscriptions an ERROR frame refers to.

        Frames carrying a requestId or topic go to the matching subscriptions;
        a frame that names neither goes to every open subscription.
        """
        logger.error(f"WebSocket error message: {data}")
        reason = data.get("message") or data.get("payload") or "relayer returned ERROR"

        if "requestId" in data or "topic" in data:
            targets = [s for s in self._subscriptions.values() if s.matches(data)]
        else:
            targets = list(self._subscriptions.values())

        for subscription in targets:
            error = SubscriptionError(
                f"Subscription {subscription.topic.value}:{subscription.market} rejected: {reason}"
            )
            await self._notify_error(error, [subscription])

    async def _notify_error(
        self,
        error: Exception,
        subscriptions: Optional[list[Subscription]] = None,
    ) -> None:
        if subscriptions is None:
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            if subscription.on_error:
                try:
                    await subscription.on_error(error)
                except Exception as e:
                    logger.error(f"Error in subscription error callback: {e}")

    async def _handle_message(self, raw_message: Any) -> None:
        """Decode a message and route it to matching subscriptions."""
        if not raw_message or not str(raw_message).strip():
            return

        try:
            data = json.loads(raw_message)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to parse message: {e}")
            return

        if not isinstance(data, dict):
            logger.debug(f"Ignoring non-object message: {str(data)[:200]}")
            return

        if data.get("type") == "ERROR":
            await self._handle_error_message(data)
            return

        for subscription in list(self._subscriptions.values()):
            if subscription.matches(data):
                try:
                    await subscription.on_message(data)
                except Exception as e:
                    logger.error(f"Error in message callback: {e}")
