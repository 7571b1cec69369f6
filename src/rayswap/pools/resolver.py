"""
resolver.py - Pool state resolution.

resolve() is the only place the base/quote inversion is applied: pools whose
base mint is wrapped SOL store the (mint, decimals) pairs swapped relative to
the token/quote convention used everywhere else. The inversion happens once,
right after decode, and is recorded on ResolvedPool.is_inverted.

Vaults and pending PnL keep their raw on-chain order. Live reserves are
returned raw too; callers orient them with SwapAmountCalculator using the
flag, never by re-checking mints.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from loguru import logger
from solders.pubkey import Pubkey

from rayswap.config.tokens import NATIVE_MINT
from rayswap.engines.execution.ledger import LedgerClient
from rayswap.errors import InvalidAddress, NotFound
from rayswap.pools.layouts import decode_market_state, decode_open_orders, decode_pool_state
from rayswap.pools.models import (
    LivePoolInfo,
    MarketState,
    OpenOrdersTotals,
    PoolKeys,
    PoolState,
    PoolSummary,
    ResolvedPool,
)

WSOL_MINT = Pubkey.from_string(NATIVE_MINT)

DEFAULT_FEE_NUMERATOR = 25
DEFAULT_FEE_DENOMINATOR = 10_000


def invert_pool_state(state: PoolState) -> PoolState:
    """Swap the base/quote (mint, decimals) pairs. Vaults are left in place."""
    return replace(
        state,
        base_mint=state.quote_mint,
        quote_mint=state.base_mint,
        base_decimals=state.quote_decimals,
        quote_decimals=state.base_decimals,
    )


def _to_pubkey(address) -> Pubkey:
    if isinstance(address, Pubkey):
        return address
    try:
        return Pubkey.from_string(str(address).strip())
    except ValueError:
        raise InvalidAddress("not a valid account address", {"address": str(address)}) from None


class PoolStateResolver:
    def __init__(self, ledger: LedgerClient):
        self.ledger = ledger

    async def _fetch(self, address: Pubkey, kind: str) -> bytes:
        data = await self.ledger.get_account_info(address)
        if data is None:
            raise NotFound(f"{kind} account not found", {kind: str(address)})
        return data

    async def resolve(self, pool_id) -> ResolvedPool:
        pool_pk = _to_pubkey(pool_id)
        state = decode_pool_state(await self._fetch(pool_pk, "pool"))

        is_inverted = state.base_mint == WSOL_MINT
        if is_inverted:
            state = invert_pool_state(state)

        logger.debug(
            f"POOL_RESOLVED | pool={pool_pk} | base={state.base_mint} | "
            f"quote={state.quote_mint} | inverted={is_inverted}"
        )
        return ResolvedPool(pool_id=pool_pk, state=state, is_inverted=is_inverted)

    async def fetch_market(self, market_id: Pubkey) -> MarketState:
        return decode_market_state(await self._fetch(market_id, "market"))

    async def load_open_orders(self, open_orders: Pubkey, market_program_id: Pubkey) -> OpenOrdersTotals:
        # TODO: verify the account owner equals market_program_id once
        # LedgerClient exposes owners alongside account data.
        data = await self.ledger.get_account_info(open_orders)
        if data is None:
            raise NotFound(
                "open orders account not found",
                {"open_orders": str(open_orders), "market_program": str(market_program_id)},
            )
        return decode_open_orders(data)

    async def _net_reserves(self, pool_id: Pubkey):
        """Raw (state, base net, quote net): vault + open orders - pending pnl."""
        state = decode_pool_state(await self._fetch(pool_id, "pool"))
        base_vault, quote_vault, orders = await asyncio.gather(
            self.ledger.get_token_account_balance(state.base_vault),
            self.ledger.get_token_account_balance(state.quote_vault),
            self.load_open_orders(state.open_orders, state.market_program_id),
        )
        base = base_vault + orders.base_token_total - state.base_need_take_pnl
        quote = quote_vault + orders.quote_token_total - state.quote_need_take_pnl
        return state, base, quote

    async def fetch_live_info(self, pool_keys: PoolKeys) -> LivePoolInfo:
        """Live reserves in raw on-chain order (not oriented by the inversion flag)."""
        state, base, quote = await self._net_reserves(pool_keys.id)
        fee_num, fee_den = state.swap_fee_numerator, state.swap_fee_denominator
        if fee_den <= 0:
            fee_num, fee_den = DEFAULT_FEE_NUMERATOR, DEFAULT_FEE_DENOMINATOR
        return LivePoolInfo(
            base_reserve=base,
            quote_reserve=quote,
            base_decimals=state.base_decimals,
            quote_decimals=state.quote_decimals,
            fee_numerator=fee_num,
            fee_denominator=fee_den,
        )

    async def get_pool_summary(self, pool_id) -> PoolSummary:
        """Net base/quote holdings in human units, raw on-chain orientation."""
        pool_pk = _to_pubkey(pool_id)
        state, base_raw, quote_raw = await self._net_reserves(pool_pk)

        base = Decimal(base_raw) / (Decimal(10) ** state.base_decimals)
        quote = Decimal(quote_raw) / (Decimal(10) ** state.quote_decimals)
        price: Optional[Decimal] = quote / base if base > 0 else None

        logger.info(f"POOL_SUMMARY | pool={pool_pk} | base={base} | quote={quote} | price={price}")
        return PoolSummary(
            pool_id=str(pool_pk),
            base_mint=str(state.base_mint),
            quote_mint=str(state.quote_mint),
            base=base,
            quote=quote,
            price=price,
        )
