"""
Data models for the market layer.

These models represent:
- Market snapshots from the relayer REST API
- Book events from the relayer WebSocket
- Limit order requests and the relayer's acknowledgment
- The USD-derived exchange rate used to price the order
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Context, Decimal
from enum import Enum
from typing import Any, Optional


class OrderSide(str, Enum):
    """Side of a limit order."""
    BUY = "BUY"
    SELL = "SELL"


class BookAction(str, Enum):
    """Action carried by a BOOK topic event."""
    NEW = "NEW"
    CANCEL = "CANCEL"
    FILL = "FILL"
    REMOVE = "REMOVE"


class Topic(str, Enum):
    """Relayer WebSocket topics."""
    BOOK = "BOOK"
    TICKER = "TICKER"
    CANDLE = "CANDLE"


@dataclass(frozen=True)
class Market:
    """
    Snapshot of a trading pair.

    Attributes:
        pair_id: Relayer market id, e.g. "ZRX-WETH"
        base_token_address: Token being bought or sold (ZRX)
        quote_token_address: Token the price is quoted in (WETH)
    """
    pair_id: str
    base_token_address: str
    quote_token_address: str
    base_token_decimals: int = 18
    quote_token_decimals: int = 18

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Market":
        """Build from a /markets/{id} response."""
        try:
            return cls(
                pair_id=data["id"],
                base_token_address=data["baseTokenAddress"],
                quote_token_address=data["quoteTokenAddress"],
                base_token_decimals=int(data.get("baseTokenDecimals", 18)),
                quote_token_decimals=int(data.get("quoteTokenDecimals", 18)),
            )
        except KeyError as e:
            raise ValueError(f"Market response missing field {e}") from e


@dataclass(frozen=True)
class ExchangeRate:
    """
    Rate derived from two USD quotes.

    rate = quote_usd / base_usd, i.e. how many base-asset units (ETH)
    one traded token (ZRX) is worth.
    """
    base_usd: Decimal
    quote_usd: Decimal

    @property
    def rate(self) -> Decimal:
        return self.quote_usd / self.base_usd


@dataclass(frozen=True)
class OrderRequest:
    """
    A limit order to submit exactly once.

    Attributes:
        side: BUY or SELL
        size: Quantity of base tokens
        price: Price in quote tokens per base token
        expiration: Unix timestamp (seconds) after which the order is void
    """
    side: OrderSide
    size: Decimal
    price: Decimal
    expiration: int

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError(f"Invalid size: {self.size}")
        if self.price <= 0:
            raise ValueError(f"Invalid price: {self.price}")
        if self.expiration <= 0:
            raise ValueError(f"Invalid expiration: {self.expiration}")

    @classmethod
    def build(
        cls,
        side: OrderSide,
        size: Decimal,
        price: Decimal,
        duration_seconds: int,
        now: Optional[float] = None,
    ) -> "OrderRequest":
        """Create an order that expires duration_seconds after now."""
        submitted_at = time.time() if now is None else now
        return cls(
            side=side,
            size=size,
            price=price,
            expiration=expiration_after(duration_seconds, submitted_at),
        )

    def to_api(self) -> dict[str, str]:
        """Body for POST /markets/{id}/order/limit."""
        return {
            "type": self.side.value,
            "quantity": plain_decimal(self.size),
            "price": plain_decimal(self.price),
            "expiration": str(self.expiration),
        }


@dataclass(frozen=True)
class OrderAck:
    """Relayer acknowledgment of a submitted order."""
    order_hash: Optional[str]
    request: OrderRequest
    signed_order: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class BookEvent:
    """
    One event from the BOOK topic.

    Only the fields needed to recognise our own order are extracted;
    the full payload stays in raw.
    """
    action: str
    market: Optional[str]
    order_hash: Optional[str]
    maker_address: Optional[str]
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> Optional["BookEvent"]:
        """Parse a WebSocket message; returns None if it is not a book event."""
        action = data.get("action")
        if not action:
            return None

        event = data.get("event") or {}
        order = event.get("order") or {}
        signed_order = order.get("signedOrder") or {}

        return cls(
            action=str(action).upper(),
            market=data.get("market"),
            order_hash=order.get("orderHash"),
            maker_address=signed_order.get("makerAddress"),
            raw=data,
        )


@dataclass(frozen=True)
class OrderConfirmation:
    """Our own order as observed on the book."""
    order_hash: Optional[str]
    maker_address: str


def expiration_after(duration_seconds: int, now: float) -> int:
    """Unix expiration for an order submitted at now, floored to whole seconds."""
    return int(math.floor(now + duration_seconds))


# Token amounts carry 18 decimals on chain
AMOUNT_PLACES = 18
_WIDE = Context(prec=78)


def plain_decimal(value: Decimal, places: int = AMOUNT_PLACES) -> str:
    """Fixed-point string for the API: at most `places` decimals, no exponent."""
    quantized = value.quantize(
        Decimal(1).scaleb(-places), rounding=ROUND_DOWN, context=_WIDE
    )
    if quantized == 0:
        return "0"
    return format(quantized.normalize(_WIDE), "f")
