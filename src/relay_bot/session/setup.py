"""
Wallet setup stages.

Each stage checks on-chain state first and only transacts when its
precondition is unmet, so rerunning a session never repeats a satisfied
step:

    Funding Gate     wait until ETH balance > threshold
    Allowance Setup  approve unlimited spend if allowance <= 0
    Wrap Stage       wrap a fixed amount if WETH balance < working minimum
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Protocol

from relay_bot.market.models import Market
from relay_bot.wallet.account import TransactionOpts, TxReceipt

from .polling import poll_until

logger = logging.getLogger(__name__)


class Wallet(Protocol):
    """What the setup stages need from a wallet."""

    address: str

    async def get_native_balance(self) -> Decimal: ...

    async def get_token_balance(self, token_address: str) -> Decimal: ...

    async def get_token_allowance(self, token_address: str) -> Decimal: ...

    async def set_unlimited_allowance(
        self, token_address: str, opts: Optional[TransactionOpts] = None
    ) -> TxReceipt: ...

    async def wrap(self, amount: Decimal, opts: Optional[TransactionOpts] = None) -> TxReceipt: ...


@dataclass(frozen=True)
class BalanceReadings:
    """Balances read together for reporting; each is a fresh RPC read."""

    native: Decimal
    wrapped: Decimal
    trade_token: Decimal


class WalletSetup:
    """
    Brings a wallet to a tradeable state.

    Usage:
        setup = WalletSetup(wallet, TransactionOpts(gas_price_wei=1))

        await setup.ensure_funded(Decimal("0"))
        await setup.ensure_allowance(market.quote_token_address)
        await setup.ensure_wrapped(market.quote_token_address, Decimal("0.01"))
    """

    def __init__(
        self,
        wallet: Wallet,
        tx_opts: Optional[TransactionOpts] = None,
        poll_interval: float = 3.0,
        wrap_minimum: Decimal = Decimal("0.01"),
        faucet_url: str = "https://faucet.kovan.network/",
    ) -> None:
        self._wallet = wallet
        self._tx_opts = tx_opts or TransactionOpts()
        self._poll_interval = poll_interval
        self._wrap_minimum = wrap_minimum
        self._faucet_url = faucet_url

    async def read_balances(self, market: Market) -> BalanceReadings:
        """Read ETH, quote-token (WETH) and base-token (ZRX) balances."""
        return BalanceReadings(
            native=await self._wallet.get_native_balance(),
            wrapped=await self._wallet.get_token_balance(market.quote_token_address),
            trade_token=await self._wallet.get_token_balance(market.base_token_address),
        )

    async def ensure_funded(self, min_threshold: Decimal = Decimal("0")) -> Decimal:
        """
        Wait until the ETH balance strictly exceeds min_threshold.

        Polls indefinitely; cancel the awaiting task to give up.

        Returns:
            The funded balance
        """
        hinted = False

        def on_tick(attempt: int, balance: Decimal) -> None:
            nonlocal hinted
            if not hinted:
                hinted = True
                logger.warning(
                    f"Visit {self._faucet_url} and enter your address: {self._wallet.address}"
                )
                logger.info("Waiting for ETH...")
            else:
                logger.info(f"Waiting for ETH... (poll #{attempt}, balance {balance})")

        balance = await poll_until(
            self._wallet.get_native_balance,
            lambda value: value > min_threshold,
            interval=self._poll_interval,
            on_tick=on_tick,
        )
        if hinted:
            logger.info(f"{balance} ETH received!")
        return balance

    async def ensure_allowance(self, token_address: str) -> Optional[TxReceipt]:
        """
        Grant the exchange an unlimited allowance if none is set.

        Returns:
            The mined receipt, or None if an allowance already existed

        Raises:
            ChainTxError: If the approval fails (fatal, not retried)
        """
        allowance = await self._wallet.get_token_allowance(token_address)
        if allowance > 0:
            logger.debug(f"Allowance already set for {token_address}")
            return None

        logger.info("Setting WETH allowance...")
        receipt = await self._wallet.set_unlimited_allowance(token_address, self._tx_opts)
        logger.info(f"tx: {receipt.transaction_hash}")
        return receipt

    async def ensure_wrapped(self, token_address: str, amount: Decimal) -> Optional[TxReceipt]:
        """
        Wrap amount ETH if the wrapped balance is below the working minimum.

        Returns:
            The mined receipt, or None if the balance was sufficient

        Raises:
            ChainTxError: If the deposit fails (fatal, not retried)
        """
        wrapped = await self._wallet.get_token_balance(token_address)
        if wrapped >= self._wrap_minimum:
            logger.debug(f"WETH balance {wrapped} >= {self._wrap_minimum}, not wrapping")
            return None

        logger.info(f"Wrapping {amount} ETH...")
        receipt = await self._wallet.wrap(amount, self._tx_opts)
        logger.info(f"tx: {receipt.transaction_hash}")
        return receipt


def describe(value: Any) -> str:
    """Render a Decimal without exponent noise for log lines."""
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)
