"""
Session configuration.

All settings come from environment variables (optionally seeded from a .env
file by main). The configuration is built once at startup and never mutated.

Environment Variables:
    RADAR_WALLET_PASSWORD     Password unlocking the wallet keystore (required)
    RADAR_KEYSTORE_PATH       Path to the encrypted JSON keystore (default: wallet.json)
    RADAR_API_ENDPOINT        Relayer REST endpoint
    RADAR_WS_ENDPOINT         Relayer WebSocket endpoint
    RADAR_RPC_URL             Ethereum JSON-RPC endpoint
    RADAR_PAIR                Trading pair (default: ZRX-WETH)
    BASE_TICKER_URL           USD ticker for the base asset of the rate (ETH)
    QUOTE_TICKER_URL          USD ticker for the traded asset (ZRX)
    MIN_FUNDING               ETH balance that must be exceeded (default: 0)
    WRAP_AMOUNT               ETH to wrap when WETH runs low (default: 0.01)
    WRAP_MINIMUM              WETH balance below which we wrap (default: 0.01)
    ORDER_SIZE                Order quantity in base tokens (default: 1)
    ORDER_DURATION_SECONDS    Order lifetime (default: 43200, 12 hours)
    FUNDING_POLL_SECONDS      Balance poll interval (default: 3)
    GAS_PRICE_WEI             Gas price for setup transactions (default: 1)
    WETH_ADDRESS              WETH9 contract
    ASSET_PROXY_ADDRESS       0x ERC20Proxy that receives the allowance
    EXCHANGE_ADDRESS          0x Exchange used as the EIP-712 verifying contract
    LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any

PASSWORD_ENV = "RADAR_WALLET_PASSWORD"

# Kovan deployments of WETH9 and the 0x v2 contracts
KOVAN_WETH = "0xd0A1E359811322d97991E03f863a0C30C2cF029C"
KOVAN_ERC20_PROXY = "0xF1eC01d6236D3CD881a0bF0130eA25fe4234003E"
KOVAN_EXCHANGE = "0x35dD2932454449b14Cee11A94d3674a936d5d7b2"


class ConfigMissingError(Exception):
    """Raised when a required setting is absent or unparseable."""

    def __init__(self, name: str, hint: str = ""):
        self.name = name
        self.hint = hint
        message = f"{name} required"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message)


@dataclass(frozen=True)
class SessionConfig:
    """Immutable inputs for one trading session."""

    wallet_password: str = ""
    keystore_path: str = "wallet.json"

    # Endpoints
    api_endpoint: str = "https://api.kovan.radarrelay.com/v2"
    ws_endpoint: str = "wss://ws.kovan.radarrelay.com/v2"
    rpc_url: str = "https://kovan.infura.io/radar"
    base_ticker_url: str = "https://api.coinmarketcap.com/v1/ticker/ethereum/"
    quote_ticker_url: str = "https://api.coinmarketcap.com/v1/ticker/0x/"

    # Trading parameters
    pair_id: str = "ZRX-WETH"
    min_funding: Decimal = Decimal("0")
    wrap_amount: Decimal = Decimal("0.01")
    wrap_minimum: Decimal = Decimal("0.01")
    order_size: Decimal = Decimal("1")
    order_duration_seconds: int = 43200  # 12 hours

    # Chain
    funding_poll_seconds: float = 3.0
    gas_price_wei: int = 1
    weth_address: str = KOVAN_WETH
    asset_proxy_address: str = KOVAN_ERC20_PROXY
    exchange_address: str = KOVAN_EXCHANGE

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        # from_env and with_overrides both end up here
        _check_range("MIN_FUNDING", self.min_funding, allow_zero=True)
        _check_range("WRAP_AMOUNT", self.wrap_amount)
        _check_range("WRAP_MINIMUM", self.wrap_minimum, allow_zero=True)
        _check_range("ORDER_SIZE", self.order_size)
        _check_range("ORDER_DURATION_SECONDS", self.order_duration_seconds)
        _check_range("FUNDING_POLL_SECONDS", self.funding_poll_seconds)
        _check_range("GAS_PRICE_WEI", self.gas_price_wei, allow_zero=True)

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Load configuration from environment variables."""
        env = os.environ
        return cls(
            wallet_password=env.get(PASSWORD_ENV, ""),
            keystore_path=env.get("RADAR_KEYSTORE_PATH", "wallet.json"),
            api_endpoint=env.get("RADAR_API_ENDPOINT", cls.api_endpoint),
            ws_endpoint=env.get("RADAR_WS_ENDPOINT", cls.ws_endpoint),
            rpc_url=env.get("RADAR_RPC_URL", cls.rpc_url),
            base_ticker_url=env.get("BASE_TICKER_URL", cls.base_ticker_url),
            quote_ticker_url=env.get("QUOTE_TICKER_URL", cls.quote_ticker_url),
            pair_id=env.get("RADAR_PAIR", "ZRX-WETH"),
            min_funding=_decimal("MIN_FUNDING", env.get("MIN_FUNDING", "0")),
            wrap_amount=_decimal("WRAP_AMOUNT", env.get("WRAP_AMOUNT", "0.01")),
            wrap_minimum=_decimal("WRAP_MINIMUM", env.get("WRAP_MINIMUM", "0.01")),
            order_size=_decimal("ORDER_SIZE", env.get("ORDER_SIZE", "1")),
            order_duration_seconds=_number(
                int, "ORDER_DURATION_SECONDS", env.get("ORDER_DURATION_SECONDS", "43200")
            ),
            funding_poll_seconds=_number(
                float, "FUNDING_POLL_SECONDS", env.get("FUNDING_POLL_SECONDS", "3")
            ),
            gas_price_wei=_number(int, "GAS_PRICE_WEI", env.get("GAS_PRICE_WEI", "1")),
            weth_address=env.get("WETH_ADDRESS", KOVAN_WETH),
            asset_proxy_address=env.get("ASSET_PROXY_ADDRESS", KOVAN_ERC20_PROXY),
            exchange_address=env.get("EXCHANGE_ADDRESS", KOVAN_EXCHANGE),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def require_password(self) -> str:
        """
        Return the wallet password.

        Raises:
            ConfigMissingError: If the password was not provided
        """
        if not self.wallet_password:
            raise ConfigMissingError(
                "password",
                f"please run `export {PASSWORD_ENV}=yourpassword`",
            )
        return self.wallet_password

    def with_overrides(self, **changes: Any) -> "SessionConfig":
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def __repr__(self) -> str:
        # Never print the password
        return (
            f"SessionConfig(pair_id={self.pair_id}, order_size={self.order_size}, "
            f"wrap_amount={self.wrap_amount}, rpc_url={self.rpc_url})"
        )


def _decimal(name: str, raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigMissingError(name, f"expected a decimal number, got {raw!r}")


def _number(kind: type, name: str, raw: str) -> Any:
    try:
        return kind(raw)
    except ValueError:
        raise ConfigMissingError(name, f"expected {kind.__name__}, got {raw!r}")


def _check_range(name: str, value: Any, allow_zero: bool = False) -> None:
    """Reject NaN, infinities and values below the allowed floor."""
    if isinstance(value, Decimal):
        finite = value.is_finite()
    else:
        finite = math.isfinite(value)
    if not finite:
        raise ConfigMissingError(name, f"expected a finite number, got {value}")
    if value < 0 or (value == 0 and not allow_zero):
        floor = ">= 0" if allow_zero else "> 0"
        raise ConfigMissingError(name, f"must be {floor}, got {value}")
