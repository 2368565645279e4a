"""
Book subscriber with a one-shot completion signal.

Watches the BOOK topic of one market for a NEW order whose maker is our own
address. The first such event resolves the completion future; any later
match is ignored, so the session completes exactly once. A dropped
connection fails the future with SubscriptionError instead.

The message callback runs on the event loop and only inspects the event;
it never awaits I/O.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from relay_bot.market.models import BookAction, BookEvent, OrderConfirmation, Topic
from relay_bot.market.websocket import SubscriptionError

logger = logging.getLogger(__name__)


class SubscriptionHandle(Protocol):
    async def close(self) -> None: ...


class TopicStream(Protocol):
    """What the subscriber needs from a WebSocket client."""

    async def subscribe(
        self,
        topic: Topic,
        market: str,
        on_message: Callable[[Dict[str, Any]], Awaitable[None]],
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None,
    ) -> SubscriptionHandle: ...


def is_own_new_order(event: BookEvent, own_address: str) -> bool:
    """Match predicate: a NEW order event whose maker is own_address."""
    if event.action != BookAction.NEW.value:
        return False
    if not event.maker_address:
        return False
    return event.maker_address.lower() == own_address.lower()


class BookSubscriber:
    """
    Waits for our own order to appear on the book.

    Usage:
        subscriber = BookSubscriber(stream, wallet.address)
        handle = await subscriber.subscribe("ZRX-WETH")
        try:
            ...  # place the order
            confirmation = await subscriber.wait()
        finally:
            await handle.close()
    """

    def __init__(self, stream: TopicStream, own_address: str) -> None:
        self._stream = stream
        self._own_address = own_address
        self._completion: asyncio.Future[OrderConfirmation] = (
            asyncio.get_running_loop().create_future()
        )
        self._events_seen = 0

    @property
    def completed(self) -> bool:
        return self._completion.done()

    @property
    def events_seen(self) -> int:
        return self._events_seen

    async def subscribe(self, pair_id: str) -> SubscriptionHandle:
        """Open the BOOK subscription for pair_id."""
        return await self._stream.subscribe(
            Topic.BOOK,
            pair_id,
            self.on_message,
            on_error=self.on_error,
        )

    async def on_message(self, data: Dict[str, Any]) -> None:
        """Inspect one book message; resolve completion on the first match."""
        event = BookEvent.from_message(data)
        if event is None:
            return

        self._events_seen += 1
        if self._completion.done():
            return
        if not is_own_new_order(event, self._own_address):
            return

        logger.info(f"Order Placed! {event.order_hash}")
        self._completion.set_result(
            OrderConfirmation(order_hash=event.order_hash, maker_address=self._own_address)
        )

    async def on_error(self, error: Exception) -> None:
        """Fail the completion future if the subscription drops first."""
        if self._completion.done():
            return
        if not isinstance(error, SubscriptionError):
            error = SubscriptionError(str(error))
        self._completion.set_exception(error)

    async def wait(self, timeout: Optional[float] = None) -> OrderConfirmation:
        """
        Wait for our order on the book.

        Args:
            timeout: Seconds to wait (None = no limit)

        Raises:
            SubscriptionError: If the connection dropped first
            asyncio.TimeoutError: If timeout elapsed
        """
        # shield so a timeout doesn't cancel the shared future
        return await asyncio.wait_for(asyncio.shield(self._completion), timeout)

    def close(self) -> None:
        """
        Release the completion future once the session is done with it.

        A pending future is cancelled; a failure nobody awaited is marked
        retrieved so it isn't reported again at garbage collection.
        """
        if not self._completion.done():
            self._completion.cancel()
        elif not self._completion.cancelled():
            self._completion.exception()
