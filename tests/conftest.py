"""
Shared test fixtures for end-to-end session tests.

This file provides fixtures that span multiple components,
unlike component-specific fixtures in src/relay_bot/{component}/tests/conftest.py

The WebSocket client, subscriber, placer and setup stages are real; only the
socket, the chain and the relayer's HTTP side are faked.
"""

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from relay_bot.config import SessionConfig
from relay_bot.market.models import ExchangeRate, Market, OrderAck
from relay_bot.wallet.account import TxReceipt

OWN_ADDRESS = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
ZRX = "0x2002d3812f58e35f0ea1ffbf80a75a38c32175fa"
WETH = "0xd0a1e359811322d97991e03f863a0c30c2cf029c"


# =============================================================================
# Socket Fixtures
# =============================================================================


class FakeConnection:
    """
    Stands in for a websockets client connection.

    Messages put in inbox are returned by recv(); an exception put there is
    raised instead, which is how tests drop the connection.
    """

    def __init__(self):
        self.sent = []
        self.inbox = asyncio.Queue()
        self.closed = False

    async def send(self, message):
        self.sent.append(json.loads(message))

    async def recv(self):
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self):
        self.closed = True

    def push(self, message):
        self.inbox.put_nowait(json.dumps(message))


@pytest.fixture
async def connection():
    """A fake socket; websockets.connect() is patched to return it."""
    conn = FakeConnection()
    with patch("relay_bot.market.websocket.websockets.connect", AsyncMock(return_value=conn)):
        yield conn


# =============================================================================
# Chain Fixtures
# =============================================================================


class ChainWallet:
    """Wallet whose state changes the way the chain would after each transaction."""

    def __init__(self, native=Decimal("1"), allowance=Decimal("0"), wrapped=Decimal("0")):
        self.address = OWN_ADDRESS
        self.native = native
        self.allowance = allowance
        self.wrapped = wrapped
        self.transactions = []

    async def get_native_balance(self):
        return self.native

    async def get_token_balance(self, token_address):
        return self.wrapped if token_address == WETH else Decimal("0")

    async def get_token_allowance(self, token_address):
        return self.allowance

    async def set_unlimited_allowance(self, token_address, opts=None):
        self.transactions.append("approve")
        self.allowance = Decimal(2**256 - 1)
        return TxReceipt(transaction_hash="0x01", status=1, block_number=1)

    async def wrap(self, amount, opts=None):
        self.transactions.append("wrap")
        self.native -= amount
        self.wrapped += amount
        return TxReceipt(transaction_hash="0x02", status=1, block_number=2)


@pytest.fixture
def chain_wallet():
    return ChainWallet()


# =============================================================================
# Market Fixtures
# =============================================================================


@pytest.fixture
def config():
    return SessionConfig(wallet_password="secret", ws_endpoint="wss://ws.relay.test/v2")


@pytest.fixture
def markets():
    markets = MagicMock()
    markets.get_market = AsyncMock(
        return_value=Market(pair_id="ZRX-WETH", base_token_address=ZRX, quote_token_address=WETH)
    )
    return markets


@pytest.fixture
def prices():
    prices = MagicMock()
    prices.compute_rate = AsyncMock(
        return_value=ExchangeRate(base_usd=Decimal("200"), quote_usd=Decimal("0.50"))
    )
    return prices


@pytest.fixture
def relay(connection):
    """
    Relayer REST side: accepting an order publishes it on the BOOK topic.
    """
    relay = MagicMock()

    async def submit(pair_id, order, signer):
        connection.push({
            "type": "BOOK",
            "topic": "BOOK",
            "market": pair_id,
            "action": "NEW",
            "event": {
                "order": {
                    "orderHash": "0xfeed",
                    "signedOrder": {"makerAddress": OWN_ADDRESS.lower()},
                },
            },
        })
        return OrderAck(order_hash="0xfeed", request=order)

    relay.submit_limit_order = AsyncMock(side_effect=submit)
    return relay


@pytest.fixture
def make_chain_wallet():
    """Factory for wallets that start part-way through setup."""
    return ChainWallet
