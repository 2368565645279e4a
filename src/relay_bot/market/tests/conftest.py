"""
Test fixtures for the market layer.

IMPORTANT: All external API calls must be mocked.
Never hit the real relayer, tickers or RPC node in tests.
"""

import json
from unittest.mock import AsyncMock

import pytest
from eth_account import Account

from relay_bot.config import KOVAN_EXCHANGE
from relay_bot.market.models import Market
from relay_bot.market.signer import OrderSigner

ZRX = "0x2002d3812f58e35f0ea1ffbf80a75a38c32175fa"
WETH = "0xd0a1e359811322d97991e03f863a0c30c2cf029c"
FEE_RECIPIENT = "0xa258b39954cef5cb142fd567a46cddb31a670124"


# =============================================================================
# HTTP Fakes
# =============================================================================


class FakeResponse:
    """Stands in for an aiohttp response used as an async context manager."""

    def __init__(self, status=200, body=""):
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def text(self):
        return self._body

    async def json(self, content_type="application/json"):
        return json.loads(self._body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; replays queued responses."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.close = AsyncMock()

    def _next(self):
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self._next()

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return self._next()


@pytest.fixture
def http_session():
    """Factory for a fake session replaying the given responses in order."""
    def _build(*responses):
        return FakeSession(responses)
    return _build


@pytest.fixture
def http_response():
    """Factory for fake responses: http_response(status, body)."""
    return FakeResponse


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def market():
    """The ZRX-WETH market on Kovan."""
    return Market(
        pair_id="ZRX-WETH",
        base_token_address=ZRX,
        quote_token_address=WETH,
    )


@pytest.fixture
def market_response():
    """GET /markets/ZRX-WETH body."""
    return {
        "id": "ZRX-WETH",
        "displayName": "ZRX/WETH",
        "baseTokenAddress": ZRX,
        "quoteTokenAddress": WETH,
        "baseTokenDecimals": 18,
        "quoteTokenDecimals": 18,
        "quoteIncrement": 8,
        "minOrderSize": "0.00001",
        "maxOrderSize": "1000000000",
        "score": 99.5,
    }


# =============================================================================
# Signing Fixtures
# =============================================================================


@pytest.fixture
def account():
    """A deterministic local account."""
    return Account.from_key("0x" + "4c" * 32)


@pytest.fixture
def signer(account):
    """Order signer for the test account."""
    return OrderSigner(account, KOVAN_EXCHANGE)


@pytest.fixture
def unsigned_order(account):
    """An unsigned order as built by the relayer (all strings)."""
    return {
        "exchangeAddress": KOVAN_EXCHANGE.lower(),
        "makerAddress": account.address.lower(),
        "takerAddress": "0x0000000000000000000000000000000000000000",
        "feeRecipientAddress": FEE_RECIPIENT,
        "senderAddress": "0x0000000000000000000000000000000000000000",
        "makerAssetAmount": "2500000000000000",
        "takerAssetAmount": "1000000000000000000",
        "makerFee": "0",
        "takerFee": "0",
        "expirationTimeSeconds": "1700043200",
        "salt": "123456789",
        "makerAssetData": "0xf47261b0000000000000000000000000" + WETH[2:],
        "takerAssetData": "0xf47261b0000000000000000000000000" + ZRX[2:],
    }


# =============================================================================
# WebSocket Fixtures
# =============================================================================


@pytest.fixture
def book_new_message():
    """Factory for BOOK topic events on ZRX-WETH."""
    def _build(maker, order_hash="0xabc123", action="NEW", market="ZRX-WETH"):
        return {
            "type": "BOOK",
            "topic": "BOOK",
            "market": market,
            "action": action,
            "event": {
                "order": {
                    "orderHash": order_hash,
                    "state": "OPEN",
                    "type": "BID",
                    "price": "0.0025",
                    "signedOrder": {
                        "makerAddress": maker,
                        "makerAssetAmount": "2500000000000000",
                    },
                },
            },
        }
    return _build
