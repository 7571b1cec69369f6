"""
Quote token registry.

Raydium v4 pools are quoted in wrapped SOL or USDC. The configured quote token
is the input side of a buy and the output side of a sell.

Extra quote tokens can be registered at boot via `trading.extra_quote_tokens`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class SolanaToken:
    symbol: str
    mint: str
    decimals: int


# NOTE: Mainnet mints.
WSOL = SolanaToken(symbol="WSOL", mint="So11111111111111111111111111111111111111112", decimals=9)
USDC = SolanaToken(symbol="USDC", mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", decimals=6)

# Pools with WSOL on the base side store base/quote swapped.
NATIVE_MINT = WSOL.mint

TOKEN_MAP: Dict[str, SolanaToken] = {t.symbol: t for t in [WSOL, USDC]}


def load_extra_tokens(extra_tokens_str: Optional[str] = None) -> Dict[str, SolanaToken]:
    """Merge extra tokens from a config string into a copy of TOKEN_MAP.

    Format (comma-separated):
        "BONK=<mint>:<decimals>,FOO=<mint>:<decimals>"

    Malformed entries are skipped.
    """
    token_map = TOKEN_MAP.copy()
    if not extra_tokens_str or not extra_tokens_str.strip():
        return token_map

    for entry in [p.strip() for p in extra_tokens_str.split(",") if p.strip()]:
        if "=" not in entry:
            continue
        sym, rest = entry.split("=", 1)
        sym = sym.strip().upper()
        if not sym or ":" not in rest:
            continue
        mint, dec_str = (part.strip() for part in rest.split(":", 1))
        if not mint or not dec_str:
            continue
        try:
            decimals = int(dec_str)
        except ValueError:
            continue
        if decimals < 0:
            continue
        token_map[sym] = SolanaToken(symbol=sym, mint=mint, decimals=decimals)

    return token_map


def get_token(symbol_or_mint: str, token_map: Optional[Dict[str, SolanaToken]] = None) -> SolanaToken:
    """Look up by symbol (case-insensitive) or by exact mint address."""
    tokens = token_map if token_map is not None else TOKEN_MAP
    key = symbol_or_mint.strip()
    if key.upper() in tokens:
        return tokens[key.upper()]
    # "SOL" is accepted as an alias of the wrapped mint
    if key.upper() == "SOL":
        return WSOL
    for token in tokens.values():
        if token.mint == key:
            return token
    raise KeyError(f"Token not configured: {symbol_or_mint}")


__all__ = [
    "SolanaToken",
    "WSOL",
    "USDC",
    "NATIVE_MINT",
    "TOKEN_MAP",
    "get_token",
    "load_extra_tokens",
]
