"""Pool records. All frozen: built per call from fresh snapshots, never mutated."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from solders.pubkey import Pubkey


@dataclass(frozen=True)
class PoolState:
    """Decoded AMM v4 pool account (only the fields the swap path reads)."""
    status: int
    nonce: int
    base_decimals: int
    quote_decimals: int
    swap_fee_numerator: int
    swap_fee_denominator: int
    base_need_take_pnl: int
    quote_need_take_pnl: int
    base_vault: Pubkey
    quote_vault: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    lp_mint: Pubkey
    open_orders: Pubkey
    market_id: Pubkey
    market_program_id: Pubkey
    target_orders: Pubkey
    version: int = 4

    def __post_init__(self):
        if self.base_decimals < 0 or self.quote_decimals < 0:
            raise ValueError("decimals must be non-negative")


@dataclass(frozen=True)
class ResolvedPool:
    """PoolState plus the inversion flag. Only PoolStateResolver.resolve builds these."""
    pool_id: Pubkey
    state: PoolState
    is_inverted: bool


@dataclass(frozen=True)
class MarketState:
    """Decoded OpenBook (serum v3) market account."""
    own_address: Pubkey
    vault_signer_nonce: int
    base_mint: Pubkey
    quote_mint: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    request_queue: Pubkey
    event_queue: Pubkey
    bids: Pubkey
    asks: Pubkey


@dataclass(frozen=True)
class OpenOrdersTotals:
    base_token_total: int
    quote_token_total: int


@dataclass(frozen=True)
class PoolKeys:
    """Every account the swap instruction touches.

    Mints and decimals follow the resolved (possibly inverted) orientation.
    Vaults always follow the raw on-chain order.
    """
    id: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    lp_mint: Pubkey
    base_decimals: int
    quote_decimals: int
    program_id: Pubkey
    authority: Pubkey
    open_orders: Pubkey
    target_orders: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    market_program_id: Pubkey
    market_id: Pubkey
    market_authority: Pubkey
    market_base_vault: Pubkey
    market_quote_vault: Pubkey
    market_bids: Pubkey
    market_asks: Pubkey
    market_event_queue: Pubkey
    version: int = 4
    market_version: int = 3


@dataclass(frozen=True)
class LivePoolInfo:
    """Net reserves in raw units. Raw on-chain order until oriented."""
    base_reserve: int
    quote_reserve: int
    base_decimals: Optional[int]
    quote_decimals: Optional[int]
    fee_numerator: int = 25
    fee_denominator: int = 10_000


@dataclass(frozen=True)
class PoolSummary:
    pool_id: str
    base_mint: str
    quote_mint: str
    base: Decimal
    quote: Decimal
    price: Optional[Decimal]

    def to_dict(self) -> dict:
        return {
            "pool_id": self.pool_id,
            "base_mint": self.base_mint,
            "quote_mint": self.quote_mint,
            "base": str(self.base),
            "quote": str(self.quote),
            "price": str(self.price) if self.price is not None else None,
        }
