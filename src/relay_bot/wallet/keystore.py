"""
Encrypted keystore loading.

The wallet key lives in a standard Ethereum JSON keystore (scrypt or pbkdf2,
as written by geth or eth_account.Account.encrypt) and is unlocked with the
session's wallet password.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Union

from eth_account import Account

logger = logging.getLogger(__name__)


class KeystoreError(Exception):
    """Raised when the keystore is missing, unreadable or the password is wrong."""
    pass


def load_private_key(path: Union[str, Path], password: str) -> bytes:
    """
    Decrypt the private key in a JSON keystore.

    Args:
        path: Keystore file
        password: Keystore password

    Returns:
        32-byte private key

    Raises:
        KeystoreError: On a missing/invalid file or wrong password
    """
    keystore_path = Path(path)
    if not keystore_path.exists():
        raise KeystoreError(f"Keystore not found: {keystore_path}")

    try:
        with open(keystore_path) as f:
            keystore = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise KeystoreError(f"Cannot read keystore {keystore_path}: {e}") from e

    try:
        key = Account.decrypt(keystore, password)
    except ValueError as e:
        raise KeystoreError(f"Cannot unlock keystore {keystore_path}: {e}") from e

    logger.info(f"Unlocked keystore {keystore_path}")
    return bytes(key)


def write_keystore(path: Union[str, Path], private_key: bytes, password: str) -> Path:
    """Encrypt a private key into a new keystore file (owner read/write only)."""
    keystore_path = Path(path)
    keystore_path.parent.mkdir(parents=True, exist_ok=True)
    with open(keystore_path, "w") as f:
        json.dump(Account.encrypt(private_key, password), f)
    keystore_path.chmod(0o600)
    return keystore_path


def load_or_create_private_key(path: Union[str, Path], password: str) -> bytes:
    """
    Unlock the keystore at path, creating a fresh wallet there if none exists.

    A freshly created wallet holds no ETH; the funding gate waits for it.
    """
    keystore_path = Path(path)
    if keystore_path.exists():
        return load_private_key(keystore_path, password)

    account = Account.create()
    write_keystore(keystore_path, bytes(account.key), password)
    logger.info(f"Created new wallet {account.address} in {keystore_path}")
    return bytes(account.key)
