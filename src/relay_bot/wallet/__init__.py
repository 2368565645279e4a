"""
Wallet Layer - on-chain reads and setup transactions.

This module provides:
    - WalletAccount: ETH/token balances, allowances, approve and wrap
    - TransactionOpts / TxReceipt: transaction options and results
    - ChainTxError: a setup transaction was rejected, reverted or not mined
    - load_private_key: unlock a JSON keystore with the wallet password

Usage:
    from relay_bot.wallet import WalletAccount, load_private_key

    key = load_private_key("wallet.json", password)
    account = WalletAccount.connect(rpc_url, key, asset_proxy, weth)
"""

from .account import (
    ChainTxError,
    TransactionOpts,
    TxReceipt,
    UNLIMITED_ALLOWANCE,
    WalletAccount,
)
from .keystore import (
    KeystoreError,
    load_or_create_private_key,
    load_private_key,
    write_keystore,
)

__all__ = [
    "ChainTxError",
    "TransactionOpts",
    "TxReceipt",
    "UNLIMITED_ALLOWANCE",
    "WalletAccount",
    "KeystoreError",
    "load_or_create_private_key",
    "load_private_key",
    "write_keystore",
]
