"""
Session Layer - the bootstrap-and-trade workflow.

This module provides:
    - TradingSession: runs every stage in order (use this!)
    - SessionState: forward-only session states
    - WalletSetup: funding gate, allowance setup and wrap stage
    - BookSubscriber: waits for our own NEW order on the book
    - OrderPlacer: builds and submits the time-bounded limit order
    - poll_until: cancellable, optionally bounded polling

Usage:
    from relay_bot.session import TradingSession

    session = TradingSession(config, rest_client, price_feed, setup, subscriber, placer)
    confirmation = await session.run()
"""

from .placer import OrderPlacer
from .polling import PollTimeoutError, poll_until
from .setup import BalanceReadings, WalletSetup
from .subscriber import BookSubscriber, is_own_new_order
from .workflow import SessionState, TradingSession

__all__ = [
    "TradingSession",
    "SessionState",
    "WalletSetup",
    "BalanceReadings",
    "BookSubscriber",
    "is_own_new_order",
    "OrderPlacer",
    "PollTimeoutError",
    "poll_until",
]
