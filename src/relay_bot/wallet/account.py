"""
Wallet account backed by an Ethereum JSON-RPC node.

Reads balances and allowances, and sends the two setup transactions the
exchange needs before a maker can trade:

1. ERC20 approve() of an unlimited amount for the 0x asset proxy
2. WETH deposit() to wrap ETH

Transactions wait until mined by default. A rejected, reverted or unmined
transaction raises ChainTxError and is never retried here: the nonce or gas
state may already have moved on.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.constants import MAX_INT
from web3.middleware import ExtraDataToPOAMiddleware

logger = logging.getLogger(__name__)

UNLIMITED_ALLOWANCE = int(MAX_INT, 0)

ERC20_ABI = json.loads('''
[
    {
        "constant": true,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": true,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": true,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "constant": false,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]
''')

WETH_DEPOSIT_ABI = json.loads('''
[{
    "constant": false,
    "inputs": [],
    "name": "deposit",
    "outputs": [],
    "payable": true,
    "stateMutability": "payable",
    "type": "function"
}]
''')


class ChainTxError(Exception):
    """Raised when a transaction is rejected, reverts, or never gets mined."""

    def __init__(self, message: str, transaction_hash: Optional[str] = None):
        super().__init__(message)
        self.transaction_hash = transaction_hash


@dataclass(frozen=True)
class TransactionOpts:
    """Options for setup transactions."""

    gas_price_wei: int = 1
    await_mined: bool = True
    receipt_timeout: float = 600.0


@dataclass(frozen=True)
class TxReceipt:
    """The part of a transaction receipt the session reports."""

    transaction_hash: str
    status: Optional[int] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


class WalletAccount:
    """
    Balances, allowances and setup transactions for one private key.

    Usage:
        account = WalletAccount(web3, private_key, asset_proxy, weth)

        eth = await account.get_native_balance()
        if await account.get_token_allowance(weth) <= 0:
            receipt = await account.set_unlimited_allowance(weth, TransactionOpts())
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        private_key: Any,
        asset_proxy_address: str,
        weth_address: str,
    ) -> None:
        """
        Initialize the account.

        Args:
            web3: Connected AsyncWeb3 instance
            private_key: Key bytes or hex string
            asset_proxy_address: Spender granted the token allowance
            weth_address: WETH9 contract used for wrapping
        """
        self._web3 = web3
        self._account: LocalAccount = web3.eth.account.from_key(private_key)
        self._asset_proxy = Web3.to_checksum_address(asset_proxy_address)
        self._weth = Web3.to_checksum_address(weth_address)

        # Token decimals never change, unlike balances
        self._decimals: Dict[str, int] = {}

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        private_key: Any,
        asset_proxy_address: str,
        weth_address: str,
    ) -> "WalletAccount":
        """Create an account talking to rpc_url (PoA networks supported)."""
        web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return cls(web3, private_key, asset_proxy_address, weth_address)

    async def close(self) -> None:
        """Release the RPC provider's HTTP session."""
        disconnect = getattr(self._web3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    @property
    def address(self) -> str:
        """Checksummed account address."""
        return self._account.address

    @property
    def signer(self) -> LocalAccount:
        """The local account, for off-chain order signatures."""
        return self._account

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_native_balance(self) -> Decimal:
        """ETH balance, in ether."""
        wei = await self._web3.eth.get_balance(self.address)
        return Decimal(wei) / Decimal(10**18)

    async def get_token_balance(self, token_address: str) -> Decimal:
        """ERC20 balance in whole tokens."""
        token = self._token(token_address)
        raw = await token.functions.balanceOf(self.address).call()
        return await self._to_units(token_address, raw)

    async def get_token_allowance(self, token_address: str) -> Decimal:
        """Allowance granted to the asset proxy, in whole tokens."""
        token = self._token(token_address)
        raw = await token.functions.allowance(self.address, self._asset_proxy).call()
        return await self._to_units(token_address, raw)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def set_unlimited_allowance(
        self,
        token_address: str,
        opts: Optional[TransactionOpts] = None,
    ) -> TxReceipt:
        """Approve the asset proxy to move an unlimited amount of a token."""
        token = self._token(token_address)
        call = token.functions.approve(self._asset_proxy, UNLIMITED_ALLOWANCE)
        return await self._send(call, opts or TransactionOpts(), description="approve")

    async def wrap(
        self,
        amount: Decimal,
        opts: Optional[TransactionOpts] = None,
    ) -> TxReceipt:
        """Deposit amount ETH into WETH."""
        if amount <= 0:
            raise ValueError(f"Invalid wrap amount: {amount}")
        weth = self._web3.eth.contract(address=self._weth, abi=WETH_DEPOSIT_ABI)
        value = Web3.to_wei(amount, "ether")
        return await self._send(
            weth.functions.deposit(), opts or TransactionOpts(), value=value, description="wrap"
        )

    async def _send(
        self,
        call: Any,
        opts: TransactionOpts,
        value: int = 0,
        description: str = "transaction",
    ) -> TxReceipt:
        """Build, sign, broadcast and (optionally) wait for a contract call."""
        try:
            raw_tx = await call.build_transaction({
                "chainId": await self._web3.eth.chain_id,
                "from": self.address,
                "nonce": await self._web3.eth.get_transaction_count(self.address),
                "gasPrice": opts.gas_price_wei,
                "value": value,
            })
            signed_tx = self._account.sign_transaction(raw_tx)
            tx_hash = await self._web3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except Exception as e:
            raise ChainTxError(f"{description} rejected: {e}") from e

        tx_hex = Web3.to_hex(tx_hash)
        logger.debug(f"{description} sent: {tx_hex}")

        if not opts.await_mined:
            return TxReceipt(transaction_hash=tx_hex)

        try:
            receipt = await self._web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=opts.receipt_timeout
            )
        except Exception as e:
            raise ChainTxError(f"{description} not mined: {e}", transaction_hash=tx_hex) from e

        if receipt.get("status") != 1:
            raise ChainTxError(f"{description} reverted", transaction_hash=tx_hex)

        return TxReceipt(
            transaction_hash=tx_hex,
            status=receipt.get("status"),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _token(self, token_address: str) -> Any:
        return self._web3.eth.contract(
            address=Web3.to_checksum_address(token_address), abi=ERC20_ABI
        )

    async def _to_units(self, token_address: str, raw: int) -> Decimal:
        key = token_address.lower()
        if key not in self._decimals:
            token = self._token(token_address)
            self._decimals[key] = int(await token.functions.decimals().call())
        return Decimal(raw) / (Decimal(10) ** self._decimals[key])
