"""Fee-wallet keypair resolution."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from solders.keypair import Keypair

logger = logging.getLogger(__name__)

PRIVATE_KEY_ENV = "FEE_WALLET_PRIVATE_KEY"
KEYPAIR_PATH_ENV = "SOLANA_KEYPAIR"


class WalletError(RuntimeError):
    """Raised when no usable signing keypair can be resolved."""


def keypair_from_base58(secret: str) -> Keypair:
    try:
        return Keypair.from_base58_string(secret.strip())
    except Exception as exc:
        raise WalletError("private key is not a valid base58 keypair") from exc


def load_keypair_file(path: str | os.PathLike) -> Keypair:
    """Read a Solana CLI style JSON array of 64 secret-key bytes."""

    key_path = Path(path).expanduser()
    try:
        data = json.loads(key_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise WalletError(f"cannot read keypair file {key_path}: {exc}") from exc
    except ValueError as exc:
        raise WalletError(f"keypair file {key_path} is not valid JSON") from exc
    if not isinstance(data, list) or len(data) != 64:
        raise WalletError(f"keypair file {key_path} must hold 64 integers")
    try:
        return Keypair.from_bytes(bytes(data))
    except Exception as exc:
        raise WalletError(f"keypair file {key_path} is invalid") from exc


def load_fee_wallet(path: str | os.PathLike | None = None) -> Keypair:
    """Resolve the signing keypair.

    Order: explicit ``path``, ``FEE_WALLET_PRIVATE_KEY`` (base58), then the
    JSON file named by ``SOLANA_KEYPAIR``.
    """

    if path:
        keypair = load_keypair_file(path)
        source = str(path)
    else:
        secret: Optional[str] = os.getenv(PRIVATE_KEY_ENV)
        keypair_path = os.getenv(KEYPAIR_PATH_ENV)
        if secret and secret.strip():
            keypair = keypair_from_base58(secret)
            source = PRIVATE_KEY_ENV
        elif keypair_path:
            keypair = load_keypair_file(keypair_path)
            source = keypair_path
        else:
            raise WalletError(
                f"no fee wallet configured; set {PRIVATE_KEY_ENV} or {KEYPAIR_PATH_ENV}"
            )
    logger.info("Fee wallet %s loaded from %s", keypair.pubkey(), source)
    return keypair


__all__ = [
    "WalletError",
    "keypair_from_base58",
    "load_fee_wallet",
    "load_keypair_file",
]
