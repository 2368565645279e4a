"""
Order placer.

Builds the single limit order of a session and hands it to the relayer.
Submission returns on acknowledgment; whether the order reached the book is
observed by the BookSubscriber, which must already be listening.
"""
from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable, Protocol

from relay_bot.market.models import OrderAck, OrderRequest, OrderSide
from relay_bot.market.signer import OrderSigner

logger = logging.getLogger(__name__)


class OrderRelay(Protocol):
    async def submit_limit_order(
        self, pair_id: str, order: OrderRequest, signer: OrderSigner
    ) -> OrderAck: ...


class OrderPlacer:
    """Submits time-bounded limit orders for one market."""

    def __init__(
        self,
        relay: OrderRelay,
        signer: OrderSigner,
        pair_id: str,
        duration_seconds: int = 43200,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._relay = relay
        self._signer = signer
        self._pair_id = pair_id
        self._duration_seconds = duration_seconds
        self._clock = clock

    def build_order(self, side: OrderSide, size: Decimal, price: Decimal) -> OrderRequest:
        """Order expiring duration_seconds after the current clock reading."""
        return OrderRequest.build(
            side=side,
            size=size,
            price=price,
            duration_seconds=self._duration_seconds,
            now=self._clock(),
        )

    async def place_limit_order(self, side: OrderSide, size: Decimal, price: Decimal) -> OrderAck:
        """Build and submit one limit order."""
        order = self.build_order(side, size, price)
        logger.info(f"Creating {self._pair_id} {side.value.lower()} order: {size} @ {price}")
        return await self._relay.submit_limit_order(self._pair_id, order, self._signer)
