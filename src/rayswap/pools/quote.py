"""
quote.py - Constant-product output and slippage floor.

Integer math mirrors Raydium's SDK (Liquidity.computeAmountOut):

    fee            = ceil(amount_in * fee_num / fee_den)
    in_after_fee   = amount_in - fee
    amount_out     = reserve_out * in_after_fee // (reserve_in + in_after_fee)
    min_amount_out = floor(amount_out * 100 / (100 + slippage))
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from fractions import Fraction
from typing import Union

from loguru import logger
from solders.pubkey import Pubkey

from rayswap.errors import QuoteError
from rayswap.pools.models import LivePoolInfo, PoolKeys

Number = Union[int, float, Decimal]


@dataclass(frozen=True)
class SwapQuote:
    amount_in: int
    fee: int
    amount_out: int
    min_amount_out: int
    input_is_base: bool


def orient_live_info(info: LivePoolInfo, is_inverted: bool) -> LivePoolInfo:
    """Apply the inversion to a live-info snapshot. Independent of the decode-time inversion."""
    if not is_inverted:
        return info
    return replace(
        info,
        base_reserve=info.quote_reserve,
        quote_reserve=info.base_reserve,
        base_decimals=info.quote_decimals,
        quote_decimals=info.base_decimals,
    )


def apply_slippage(amount_out: int, slippage_percent: Number) -> int:
    if Decimal(str(slippage_percent)) < 0:
        raise QuoteError(f"slippage must be >= 0, got {slippage_percent}")
    slippage = Fraction(Decimal(str(slippage_percent)))
    return int(Fraction(amount_out) * 100 / (100 + slippage))


def quote_exact_in(
    info: LivePoolInfo,
    pool_keys: PoolKeys,
    amount_in: int,
    input_mint: Pubkey,
    output_mint: Pubkey,
    slippage_percent: Number,
) -> SwapQuote:
    """Pure quote against an already-oriented LivePoolInfo."""
    context = {"pool": str(pool_keys.id), "input_mint": str(input_mint)}

    if info.base_decimals is None or info.quote_decimals is None:
        raise QuoteError("pool decimals missing", context)
    if info.base_reserve <= 0 or info.quote_reserve <= 0:
        raise QuoteError(
            f"unusable reserves base={info.base_reserve} quote={info.quote_reserve}", context
        )
    if amount_in <= 0:
        raise QuoteError(f"amount_in must be positive, got {amount_in}", context)

    if input_mint == pool_keys.base_mint and output_mint == pool_keys.quote_mint:
        input_is_base = True
        reserve_in, reserve_out = info.base_reserve, info.quote_reserve
    elif input_mint == pool_keys.quote_mint and output_mint == pool_keys.base_mint:
        input_is_base = False
        reserve_in, reserve_out = info.quote_reserve, info.base_reserve
    else:
        raise QuoteError("input/output mints do not match the pool", {**context, "output_mint": str(output_mint)})

    fee = -(-amount_in * info.fee_numerator // info.fee_denominator)
    in_after_fee = amount_in - fee
    amount_out = reserve_out * in_after_fee // (reserve_in + in_after_fee)
    min_amount_out = apply_slippage(amount_out, slippage_percent)

    return SwapQuote(
        amount_in=amount_in,
        fee=fee,
        amount_out=amount_out,
        min_amount_out=min_amount_out,
        input_is_base=input_is_base,
    )


class SwapAmountCalculator:
    """Fetches live reserves through the resolver and quotes a fixed input."""

    def __init__(self, resolver):
        self.resolver = resolver

    async def compute_min_output(
        self,
        pool_keys: PoolKeys,
        is_inverted: bool,
        amount_in: int,
        input_mint: Pubkey,
        output_mint: Pubkey,
        slippage_percent: Number,
    ) -> SwapQuote:
        raw = await self.resolver.fetch_live_info(pool_keys)
        info = orient_live_info(raw, is_inverted)
        quote = quote_exact_in(info, pool_keys, amount_in, input_mint, output_mint, slippage_percent)
        logger.debug(
            f"QUOTE | pool={pool_keys.id} | in={quote.amount_in} | out={quote.amount_out} | "
            f"min_out={quote.min_amount_out} | slippage={slippage_percent}% | inverted={is_inverted}"
        )
        return quote
