"""
Wallet loading.

ACCEPTS:
    - base58 string decoding to exactly 64 bytes (Phantom export format)
    - JSON array of 64 ints (solana-keygen file format)
REJECTS: everything else, with ConfigError.

Policy:
    - NEVER LOG: the key bytes or decoded value
    - Loaded once at boot and shared read-only
"""

from __future__ import annotations

import json

import base58
from solders.keypair import Keypair

from rayswap.errors import ConfigError

B58_CHARS = set("123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz")


def _decode_json_secret(secret: str) -> bytes:
    try:
        values = json.loads(secret)
    except ValueError as e:
        raise ConfigError(f"private key JSON is malformed: {e.__class__.__name__}") from None
    if not isinstance(values, list) or not all(isinstance(v, int) and 0 <= v <= 255 for v in values):
        raise ConfigError("private key JSON must be an array of byte values")
    return bytes(values)


def _decode_b58_secret(secret: str) -> bytes:
    if not all(c in B58_CHARS for c in secret):
        raise ConfigError("private key contains invalid characters (must be base58)")
    try:
        return base58.b58decode(secret)
    except ValueError as e:
        raise ConfigError(f"failed to decode private key as base58: {e.__class__.__name__}") from None


def load_keypair(secret: str) -> Keypair:
    if not secret or not isinstance(secret, str):
        raise ConfigError("private key is empty or not set")

    secret = secret.strip()
    key_bytes = _decode_json_secret(secret) if secret.startswith("[") else _decode_b58_secret(secret)

    if len(key_bytes) != 64:
        raise ConfigError(f"private key decoded to {len(key_bytes)} bytes, expected 64")

    try:
        return Keypair.from_bytes(key_bytes)
    except ValueError as e:
        raise ConfigError(f"failed to create keypair: {e.__class__.__name__}") from None
