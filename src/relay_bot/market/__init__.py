"""
Market Layer - relayer REST and WebSocket clients, price tickers, order signing.

This module provides:
    - RadarRestClient: market snapshots and off-chain order submission
    - RelayWebSocket: topic subscriptions with closeable handles
    - PriceFeedClient: USD tickers and the derived exchange rate
    - OrderSigner: EIP-712 signatures for 0x v2 orders

Usage:
    from relay_bot.market import RadarRestClient, RelayWebSocket, Topic

    async with RadarRestClient(api_endpoint) as client:
        market = await client.get_market("ZRX-WETH")

    ws = RelayWebSocket(ws_endpoint)
    subscription = await ws.subscribe(Topic.BOOK, market.pair_id, handle)
"""

# Models
from .models import (
    BookAction,
    BookEvent,
    ExchangeRate,
    Market,
    OrderAck,
    OrderConfirmation,
    OrderRequest,
    OrderSide,
    Topic,
    expiration_after,
)

# REST Client
from .client import (
    RadarRestClient,
    RateLimitError,
    RelayAPIError,
)

# Prices
from .prices import (
    PriceFeedClient,
    RateUnavailableError,
    parse_usd_price,
)

# Signing
from .signer import (
    OrderSigner,
    SignerError,
)

# WebSocket
from .websocket import (
    RelayWebSocket,
    Subscription,
    SubscriptionError,
    WebSocketState,
)

__all__ = [
    # Models
    "BookAction",
    "BookEvent",
    "ExchangeRate",
    "Market",
    "OrderAck",
    "OrderConfirmation",
    "OrderRequest",
    "OrderSide",
    "Topic",
    "expiration_after",
    # REST Client
    "RadarRestClient",
    "RateLimitError",
    "RelayAPIError",
    # Prices
    "PriceFeedClient",
    "RateUnavailableError",
    "parse_usd_price",
    # Signing
    "OrderSigner",
    "SignerError",
    # WebSocket
    "RelayWebSocket",
    "Subscription",
    "SubscriptionError",
    "WebSocketState",
]
