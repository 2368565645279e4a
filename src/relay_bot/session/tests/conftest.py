"""
Test fixtures for the session layer.

IMPORTANT: No chain, relayer or ticker access. The wallet and the topic
stream are in-memory fakes that record what the session asked for.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from relay_bot.config import SessionConfig
from relay_bot.market.models import ExchangeRate, Market, OrderAck
from relay_bot.wallet.account import ChainTxError, TxReceipt

OWN_ADDRESS = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
OTHER_ADDRESS = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"
ZRX = "0x2002d3812f58e35f0ea1ffbf80a75a38c32175fa"
WETH = "0xd0a1e359811322d97991e03f863a0c30c2cf029c"


# =============================================================================
# Fakes
# =============================================================================


class FakeWallet:
    """
    In-memory wallet.

    native_readings are returned one per get_native_balance() call; the
    last one repeats. Transactions are recorded in order.
    """

    def __init__(
        self,
        native_readings=(Decimal("1"),),
        allowance=Decimal("0"),
        wrapped=Decimal("0"),
        trade_token=Decimal("0"),
        address=OWN_ADDRESS,
    ):
        self.address = address
        self._native = list(native_readings)
        self.native_reads = 0
        self.allowance = allowance
        self.balances = {WETH: wrapped, ZRX: trade_token}
        self.transactions = []
        self.fail_with = None

    async def get_native_balance(self):
        self.native_reads += 1
        if len(self._native) > 1:
            return self._native.pop(0)
        return self._native[0]

    async def get_token_balance(self, token_address):
        return self.balances.get(token_address.lower(), Decimal("0"))

    async def get_token_allowance(self, token_address):
        return self.allowance

    async def set_unlimited_allowance(self, token_address, opts=None):
        self.transactions.append(("approve", token_address, opts))
        if self.fail_with:
            raise self.fail_with
        self.allowance = Decimal(2**256 - 1)
        return TxReceipt(transaction_hash="0xapprove", status=1, block_number=1)

    async def wrap(self, amount, opts=None):
        self.transactions.append(("wrap", amount, opts))
        if self.fail_with:
            raise self.fail_with
        self.balances[WETH] = self.balances.get(WETH, Decimal("0")) + amount
        return TxReceipt(transaction_hash="0xwrap", status=1, block_number=2)


class FakeTopicStream:
    """Records subscriptions and lets tests push messages or drop the connection."""

    def __init__(self):
        self.subscriptions = []
        self.handle = MagicMock()
        self.handle.close = AsyncMock()
        self._on_message = None
        self._on_error = None

    async def subscribe(self, topic, market, on_message, on_error=None):
        self.subscriptions.append((topic, market))
        self._on_message = on_message
        self._on_error = on_error
        return self.handle

    async def deliver(self, message):
        await self._on_message(message)

    async def drop(self, error):
        await self._on_error(error)


def book_event(maker, order_hash="0xorder", action="NEW", market="ZRX-WETH"):
    """A BOOK topic message."""
    return {
        "topic": "BOOK",
        "market": market,
        "action": action,
        "event": {"order": {"orderHash": order_hash, "signedOrder": {"makerAddress": maker}}},
    }


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def market():
    return Market(pair_id="ZRX-WETH", base_token_address=ZRX, quote_token_address=WETH)


@pytest.fixture
def rate():
    """ETH at $200, ZRX at $0.50."""
    return ExchangeRate(base_usd=Decimal("200"), quote_usd=Decimal("0.50"))


@pytest.fixture
def config():
    return SessionConfig(wallet_password="secret", funding_poll_seconds=3.0)


@pytest.fixture
def fake_wallet():
    return FakeWallet()


@pytest.fixture
def fake_stream():
    return FakeTopicStream()


@pytest.fixture
def book_message():
    """Factory for BOOK topic messages."""
    return book_event


@pytest.fixture
def chain_error():
    return ChainTxError("approve reverted", transaction_hash="0xdead")


@pytest.fixture
def order_ack():
    def _build(request, order_hash="0xorder"):
        return OrderAck(order_hash=order_hash, request=request)
    return _build


@pytest.fixture
def make_wallet():
    """Factory for FakeWallet with custom balances."""
    return FakeWallet
