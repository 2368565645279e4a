"""
EIP-712 signing of 0x v2 orders.

The relayer hands back unsigned orders; the maker signs the typed order
struct with the 0x v2 domain and appends the signature type byte. The
resulting signature layout expected by the 0x v2 Exchange is:

    v (1 byte) || r (32 bytes) || s (32 bytes) || signature type (1 byte)

Private keys are only used for signing and never logged.
"""

from __future__ import annotations

from typing import Any, Optional

from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from web3 import Web3

# 0x v2 signature type for EIP-712 signatures
EIP712_SIGNATURE_TYPE = 2

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

ADDRESS_FIELDS = ("makerAddress", "takerAddress", "feeRecipientAddress", "senderAddress")
UINT_FIELDS = (
    "makerAssetAmount",
    "takerAssetAmount",
    "makerFee",
    "takerFee",
    "expirationTimeSeconds",
    "salt",
)
BYTES_FIELDS = ("makerAssetData", "takerAssetData")


class SignerError(Exception):
    """Raised when an order cannot be signed."""
    pass


class OrderSigner:
    """
    Signs 0x v2 orders for a single maker account.

    Attributes:
        address: The maker's address
        exchange_address: Default verifying contract for the EIP-712 domain
    """

    ORDER_TYPES = {
        "Order": [
            {"name": "makerAddress", "type": "address"},
            {"name": "takerAddress", "type": "address"},
            {"name": "feeRecipientAddress", "type": "address"},
            {"name": "senderAddress", "type": "address"},
            {"name": "makerAssetAmount", "type": "uint256"},
            {"name": "takerAssetAmount", "type": "uint256"},
            {"name": "makerFee", "type": "uint256"},
            {"name": "takerFee", "type": "uint256"},
            {"name": "expirationTimeSeconds", "type": "uint256"},
            {"name": "salt", "type": "uint256"},
            {"name": "makerAssetData", "type": "bytes"},
            {"name": "takerAssetData", "type": "bytes"},
        ]
    }

    def __init__(self, account: LocalAccount, exchange_address: str):
        self._account = account
        self.address = account.address
        self.exchange_address = exchange_address

    def domain(self, exchange_address: Optional[str] = None) -> dict[str, Any]:
        """EIP-712 domain for the given (or default) exchange contract."""
        return {
            "name": "0x Protocol",
            "version": "2",
            "verifyingContract": Web3.to_checksum_address(
                exchange_address or self.exchange_address
            ),
        }

    def order_message(self, order: dict[str, Any]) -> dict[str, Any]:
        """Convert relayer JSON (strings everywhere) into typed EIP-712 values."""
        message: dict[str, Any] = {}
        try:
            for name in ADDRESS_FIELDS:
                message[name] = Web3.to_checksum_address(order.get(name) or NULL_ADDRESS)
            for name in UINT_FIELDS:
                message[name] = int(order.get(name) or 0)
            for name in BYTES_FIELDS:
                message[name] = _hex_to_bytes(order.get(name) or "0x")
        except (TypeError, ValueError) as e:
            raise SignerError(f"Malformed order field: {e}") from e
        return message

    def sign_order(self, order: dict[str, Any]) -> dict[str, Any]:
        """
        Sign an unsigned relayer order.

        Args:
            order: Unsigned order as returned by the relayer

        Returns:
            A copy of the order with "signature" set

        Raises:
            SignerError: If the order is malformed or not ours to sign
        """
        maker = order.get("makerAddress")
        if not maker or maker.lower() != self.address.lower():
            raise SignerError(f"Order maker {maker} does not match signer {self.address}")

        signable = encode_typed_data(
            domain_data=self.domain(order.get("exchangeAddress")),
            message_types=self.ORDER_TYPES,
            message_data=self.order_message(order),
        )
        signed = self._account.sign_message(signable)

        signature = (
            bytes([signed.v])
            + signed.r.to_bytes(32, "big")
            + signed.s.to_bytes(32, "big")
            + bytes([EIP712_SIGNATURE_TYPE])
        )

        signed_order = dict(order)
        signed_order["signature"] = "0x" + signature.hex()
        return signed_order


def _hex_to_bytes(value: str) -> bytes:
    if value.startswith("0x") or value.startswith("0X"):
        value = value[2:]
    return bytes.fromhex(value)
