"""
The bootstrap-and-trade session.

Runs the stages strictly in order:

    START -> FUNDED -> ALLOWANCE_OK -> WRAPPED -> SUBSCRIBED
          -> ORDER_PLACED -> CONFIRMED

Any exception moves the session to FAILED and propagates; stages that
already succeeded on-chain are not rolled back. The book subscription is
opened before the order is submitted so the NEW event cannot be missed, and
it is closed whatever the outcome.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol

from relay_bot.config import SessionConfig
from relay_bot.market.models import ExchangeRate, Market, OrderConfirmation, OrderSide

from .placer import OrderPlacer
from .setup import WalletSetup, describe
from .subscriber import BookSubscriber

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Session progress; transitions only move forward."""
    START = "start"
    FUNDED = "funded"
    ALLOWANCE_OK = "allowance_ok"
    WRAPPED = "wrapped"
    SUBSCRIBED = "subscribed"
    ORDER_PLACED = "order_placed"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_FORWARD_ORDER = [
    SessionState.START,
    SessionState.FUNDED,
    SessionState.ALLOWANCE_OK,
    SessionState.WRAPPED,
    SessionState.SUBSCRIBED,
    SessionState.ORDER_PLACED,
    SessionState.CONFIRMED,
]


class MarketSource(Protocol):
    async def get_market(self, pair_id: str) -> Market: ...


class RateSource(Protocol):
    async def compute_rate(self, base_url: str, quote_url: str) -> ExchangeRate: ...


class TradingSession:
    """
    One bootstrap-and-trade run.

    Usage:
        session = TradingSession(config, markets, prices, setup, subscriber, placer)
        confirmation = await session.run()
    """

    def __init__(
        self,
        config: SessionConfig,
        markets: MarketSource,
        prices: RateSource,
        setup: WalletSetup,
        subscriber: BookSubscriber,
        placer: OrderPlacer,
        wallet_address: str = "",
    ) -> None:
        self._config = config
        self._markets = markets
        self._prices = prices
        self._setup = setup
        self._subscriber = subscriber
        self._placer = placer
        self._wallet_address = wallet_address

        self._state = SessionState.START
        self.market: Optional[Market] = None
        self.rate: Optional[ExchangeRate] = None

    @property
    def state(self) -> SessionState:
        return self._state

    def _advance(self, state: SessionState) -> None:
        """Move to state; only single forward steps are allowed."""
        if self._state == SessionState.FAILED:
            raise ValueError("Session already failed")
        current = _FORWARD_ORDER.index(self._state)
        if _FORWARD_ORDER.index(state) != current + 1:
            raise ValueError(f"Invalid transition {self._state.value} -> {state.value}")
        logger.debug(f"Session state: {self._state.value} -> {state.value}")
        self._state = state

    async def run(self) -> OrderConfirmation:
        """
        Execute every stage and wait for our order on the book.

        Returns:
            The confirmation observed on the BOOK topic

        Raises:
            Whatever the failing stage raised; state becomes FAILED
        """
        try:
            return await self._run()
        except BaseException:
            self._state = SessionState.FAILED
            raise

    async def _run(self) -> OrderConfirmation:
        config = self._config

        # Rates and balances
        self.rate = await self._prices.compute_rate(config.base_ticker_url, config.quote_ticker_url)
        self.market = await self._markets.get_market(config.pair_id)
        market = self.market
        await self._report(market, self.rate)

        # Wallet setup
        await self._setup.ensure_funded(config.min_funding)
        self._advance(SessionState.FUNDED)

        logger.info("Setting Up Wallet:")
        await self._setup.ensure_allowance(market.quote_token_address)
        self._advance(SessionState.ALLOWANCE_OK)

        await self._setup.ensure_wrapped(market.quote_token_address, config.wrap_amount)
        self._advance(SessionState.WRAPPED)

        # Subscribe before placing so our NEW event can't slip past
        handle = await self._subscriber.subscribe(market.pair_id)
        self._advance(SessionState.SUBSCRIBED)
        try:
            await self._placer.place_limit_order(
                OrderSide.BUY,
                config.order_size,
                self.rate.rate,
            )
            self._advance(SessionState.ORDER_PLACED)

            confirmation = await self._subscriber.wait()
            self._advance(SessionState.CONFIRMED)
            return confirmation
        finally:
            await handle.close()
            self._subscriber.close()

    async def _report(self, market: Market, rate: ExchangeRate) -> None:
        """Log current rates and balances."""
        base_symbol, quote_symbol = _symbols(market.pair_id)
        balances = await self._setup.read_balances(market)

        logger.info("Current Exchange Rates:")
        logger.info(f"ETH/USD: {describe(rate.base_usd)}")
        logger.info(f"{base_symbol}/ETH: {describe(rate.rate)}")
        logger.info(f"Balances: {self._wallet_address}")
        logger.info(f"ETH: {describe(balances.native)}")
        logger.info(f"{quote_symbol}: {describe(balances.wrapped)}")
        logger.info(f"{base_symbol}: {describe(balances.trade_token)}")


def _symbols(pair_id: str) -> tuple[str, str]:
    base, _, quote = pair_id.partition("-")
    return base or pair_id, quote or "QUOTE"

