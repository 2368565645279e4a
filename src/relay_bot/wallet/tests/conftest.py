"""
Test fixtures for the wallet layer.

IMPORTANT: No test talks to a real RPC node. The web3 object is a MagicMock
whose contract calls return canned values; only signing uses real keys.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3 import Web3

from relay_bot.config import KOVAN_ERC20_PROXY, KOVAN_WETH
from relay_bot.wallet.account import WalletAccount

PRIVATE_KEY = "0x" + "4c" * 32
TX_HASH = b"\x12" * 32


class AwaitableValue:
    """Awaitable any number of times, like AsyncWeb3's eth.chain_id."""

    def __init__(self, value):
        self.value = value

    def __await__(self):
        async def _value():
            return self.value
        return _value().__await__()


# =============================================================================
# Web3 Fixtures
# =============================================================================


def _built_tx(**overrides):
    """A complete legacy transaction dict as build_transaction returns it."""
    tx = {
        "to": Web3.to_checksum_address(KOVAN_WETH),
        "data": "0x",
        "gas": 60000,
        "gasPrice": 1,
        "nonce": 0,
        "chainId": 42,
        "value": 0,
    }
    tx.update(overrides)
    return tx


@pytest.fixture
def contract():
    """
    Mocked ERC20/WETH contract.

    functions.<name>(...).call() and .build_transaction() are AsyncMocks.
    """
    token = MagicMock()
    token.functions.balanceOf.return_value.call = AsyncMock(return_value=0)
    token.functions.allowance.return_value.call = AsyncMock(return_value=0)
    token.functions.decimals.return_value.call = AsyncMock(return_value=18)
    token.functions.approve.return_value.build_transaction = AsyncMock(
        side_effect=lambda params: _built_tx(
            nonce=params["nonce"], gasPrice=params["gasPrice"], chainId=params["chainId"]
        )
    )
    token.functions.deposit.return_value.build_transaction = AsyncMock(
        side_effect=lambda params: _built_tx(
            nonce=params["nonce"], gasPrice=params["gasPrice"], value=params["value"]
        )
    )
    return token


@pytest.fixture
def web3(contract):
    """Mocked AsyncWeb3 with a mined, successful receipt by default."""
    w3 = MagicMock()
    w3.eth.account = Account
    w3.eth.chain_id = AwaitableValue(42)
    w3.eth.contract.return_value = contract
    w3.eth.get_balance = AsyncMock(return_value=0)
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.send_raw_transaction = AsyncMock(return_value=TX_HASH)
    w3.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": 1, "blockNumber": 100, "gasUsed": 46000}
    )
    w3.provider.disconnect = AsyncMock()
    return w3


@pytest.fixture
def wallet(web3):
    """WalletAccount over the mocked node."""
    return WalletAccount(
        web3,
        PRIVATE_KEY,
        asset_proxy_address=KOVAN_ERC20_PROXY,
        weth_address=KOVAN_WETH,
    )
