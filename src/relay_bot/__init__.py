"""
Radar Relay Bootstrap Bot.

Brings a fresh wallet to a tradeable state on a 0x relayer and places a single
time-limited limit order: waits for funding, grants the exchange an unlimited
allowance, wraps ETH into WETH, subscribes to the order book, submits a BUY
order and exits once the relayer shows that order on the book.
"""

__version__ = "0.1.0"
