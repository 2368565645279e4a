"""
Radar Relay Bootstrap Bot - Main Entry Point

Runs one bootstrap-and-trade session: wait for ETH, set the WETH allowance,
wrap ETH, subscribe to the ZRX-WETH book, place a 12-hour BUY order priced
from live USD tickers, and exit once that order shows up on the book.

Usage:
    export RADAR_WALLET_PASSWORD=yourpassword
    python -m relay_bot.main
    python -m relay_bot.main --pair ZRX-WETH --size 2 --log-level DEBUG

Configuration:
    Environment variables (see relay_bot.config), optionally from a .env file.
    A keystore is created at RADAR_KEYSTORE_PATH if none exists yet.

Exit Codes:
    0    order confirmed on the book
    1    unexpected failure
    2    missing or invalid configuration / keystore
    3    price tickers unavailable
    4    setup transaction failed
    5    book subscription failed or dropped
    130  interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import signal
import sys
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Generator, Optional

from relay_bot.config import ConfigMissingError, SessionConfig
from relay_bot.market import (
    OrderConfirmation,
    OrderSigner,
    PriceFeedClient,
    RadarRestClient,
    RateUnavailableError,
    RelayWebSocket,
    SubscriptionError,
)
from relay_bot.session import BookSubscriber, OrderPlacer, TradingSession, WalletSetup
from relay_bot.wallet import (
    ChainTxError,
    KeystoreError,
    TransactionOpts,
    WalletAccount,
    load_or_create_private_key,
)

# Configure logging before anything else logs
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_PID_FILE = "/tmp/relay-bot.pid"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_RATE_UNAVAILABLE = 3
EXIT_CHAIN_TX = 4
EXIT_SUBSCRIPTION = 5
EXIT_INTERRUPTED = 130

EXIT_CODES = (
    (ConfigMissingError, EXIT_CONFIG),
    (KeystoreError, EXIT_CONFIG),
    (RateUnavailableError, EXIT_RATE_UNAVAILABLE),
    (ChainTxError, EXIT_CHAIN_TX),
    (SubscriptionError, EXIT_SUBSCRIPTION),
)


class SingletonBotError(Exception):
    """Raised when another session is already running."""
    pass


@contextmanager
def singleton_lock(pid_file: str = DEFAULT_PID_FILE) -> Generator[None, None, None]:
    """
    Ensure only one session runs at a time.

    Two sessions on one wallet would race on nonces and wrap twice.
    Uses fcntl.LOCK_EX | fcntl.LOCK_NB on a PID file; the lock is released
    when the process exits.

    Raises:
        SingletonBotError: If another instance holds the lock
    """
    pid_path = Path(pid_file)

    existing_pid = None
    try:
        existing_pid = pid_path.read_text().strip()
    except FileNotFoundError:
        pass

    # "a+" so we don't truncate before holding the lock
    fp = open(pid_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fp.close()
        if existing_pid:
            raise SingletonBotError(
                f"Another session is already running (PID: {existing_pid}). "
                f"Kill it with: kill {existing_pid}"
            )
        raise SingletonBotError("Another session is already running.")

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
            fp.close()
            pid_path.unlink(missing_ok=True)
        except OSError:
            pass

    atexit.register(cleanup)

    try:
        logger.debug(f"Acquired singleton lock (PID: {os.getpid()}, file: {pid_file})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


def first_line(error: BaseException) -> str:
    """First line of an error message (or the error type if empty)."""
    message = str(error).strip()
    if not message:
        return type(error).__name__
    return message.splitlines()[0]


def exit_code_for(error: BaseException) -> int:
    """Map a session failure to a process exit code."""
    for kind, code in EXIT_CODES:
        if isinstance(error, kind):
            return code
    return EXIT_FAILURE


async def run_session(config: SessionConfig) -> OrderConfirmation:
    """Wire the collaborators together and run one session."""
    password = config.require_password()
    private_key = load_or_create_private_key(config.keystore_path, password)

    wallet = WalletAccount.connect(
        config.rpc_url,
        private_key,
        asset_proxy_address=config.asset_proxy_address,
        weth_address=config.weth_address,
    )
    signer = OrderSigner(wallet.signer, config.exchange_address)
    stream = RelayWebSocket(config.ws_endpoint)

    try:
        async with RadarRestClient(config.api_endpoint) as rest, PriceFeedClient() as prices:
            setup = WalletSetup(
                wallet,
                TransactionOpts(gas_price_wei=config.gas_price_wei),
                poll_interval=config.funding_poll_seconds,
                wrap_minimum=config.wrap_minimum,
            )
            session = TradingSession(
                config=config,
                markets=rest,
                prices=prices,
                setup=setup,
                subscriber=BookSubscriber(stream, wallet.address),
                placer=OrderPlacer(
                    rest,
                    signer,
                    config.pair_id,
                    duration_seconds=config.order_duration_seconds,
                ),
                wallet_address=wallet.address,
            )
            return await session.run()
    finally:
        await stream.stop()
        await wallet.close()


def _install_signal_handlers(task: asyncio.Task) -> list[signal.Signals]:
    """Cancel the session task on SIGINT/SIGTERM; returns the signals handled."""
    loop = asyncio.get_running_loop()
    installed = []

    def handle_signal(sig):
        logger.info(f"Received signal {sig}")
        task.cancel()

    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
            installed.append(sig)
    except NotImplementedError:
        # Windows doesn't support add_signal_handler
        pass
    return installed


async def main_async(config: SessionConfig) -> int:
    """Run a session and map its outcome to an exit code."""
    logger.info("Radar Relay Bot Powering Up")
    logger.info(repr(config))

    task = asyncio.create_task(run_session(config))
    handled = _install_signal_handlers(task)

    try:
        confirmation = await task
    except asyncio.CancelledError:
        logger.warning("Session cancelled")
        return EXIT_INTERRUPTED
    except Exception as e:
        code = exit_code_for(e)
        if code == EXIT_FAILURE:
            logger.debug("Unhandled session failure", exc_info=True)
        logger.error(first_line(e))
        return code
    finally:
        loop = asyncio.get_running_loop()
        for sig in handled:
            loop.remove_signal_handler(sig)

    logger.info(f"Order confirmed: {confirmation.order_hash}")
    logger.info("Goodbye.")
    return EXIT_OK


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from a .env file without overriding set ones."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def _decimal_arg(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a decimal number: {raw!r}")
    if not value.is_finite() or value <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive number: {raw!r}")
    return value


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Radar Relay Bootstrap Bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--pair", help="Trading pair (default: RADAR_PAIR or ZRX-WETH)")
    parser.add_argument("--size", type=_decimal_arg, help="Order size in base tokens")
    parser.add_argument("--keystore", help="Path to the wallet keystore")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_env_file()
    args = parse_args(argv)

    try:
        config = SessionConfig.from_env().with_overrides(
            pair_id=args.pair,
            order_size=args.size,
            keystore_path=args.keystore,
            log_level=args.log_level,
        )
    except ConfigMissingError as e:
        logger.error(first_line(e))
        return EXIT_CONFIG

    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))

    try:
        with singleton_lock():
            try:
                return asyncio.run(main_async(config))
            except KeyboardInterrupt:
                return EXIT_INTERRUPTED
    except SingletonBotError as e:
        logger.error(str(e))
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
