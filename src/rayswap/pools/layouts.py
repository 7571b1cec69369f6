"""
Account layouts for Raydium AMM v4 and the OpenBook (serum v3) accounts it references.

decode_* functions are pure: bytes in, frozen record out, DecodeError on
anything that does not match the layout.

References:
    https://github.com/raydium-io/raydium-sdk/blob/master/src/liquidity/layout.ts
    https://github.com/project-serum/serum-ts/blob/master/packages/serum/src/market.ts
"""

from __future__ import annotations

from construct import (
    BitsInteger,
    BitsSwapped,
    BitStruct,
    Bytes,
    BytesInteger,
    Const,
    ConstructError,
    Flag,
    Int64ul,
    Padding,
)
from construct import Struct as cStruct
from solders.pubkey import Pubkey

from rayswap.errors import DecodeError
from rayswap.pools.models import MarketState, OpenOrdersTotals, PoolState


U128 = BytesInteger(16, signed=False, swapped=True)

LIQUIDITY_STATE_LAYOUT_V4 = cStruct(
    "status" / Int64ul,
    "nonce" / Int64ul,
    "max_order" / Int64ul,
    "depth" / Int64ul,
    "base_decimal" / Int64ul,
    "quote_decimal" / Int64ul,
    "state" / Int64ul,
    "reset_flag" / Int64ul,
    "min_size" / Int64ul,
    "vol_max_cut_ratio" / Int64ul,
    "amount_wave_ratio" / Int64ul,
    "base_lot_size" / Int64ul,
    "quote_lot_size" / Int64ul,
    "min_price_multiplier" / Int64ul,
    "max_price_multiplier" / Int64ul,
    "system_decimal_value" / Int64ul,
    "min_separate_numerator" / Int64ul,
    "min_separate_denominator" / Int64ul,
    "trade_fee_numerator" / Int64ul,
    "trade_fee_denominator" / Int64ul,
    "pnl_numerator" / Int64ul,
    "pnl_denominator" / Int64ul,
    "swap_fee_numerator" / Int64ul,
    "swap_fee_denominator" / Int64ul,
    "base_need_take_pnl" / Int64ul,
    "quote_need_take_pnl" / Int64ul,
    "quote_total_pnl" / Int64ul,
    "base_total_pnl" / Int64ul,
    "pool_open_time" / Int64ul,
    "punish_pc_amount" / Int64ul,
    "punish_coin_amount" / Int64ul,
    "orderbook_to_init_time" / Int64ul,
    "swap_base_in_amount" / U128,
    "swap_quote_out_amount" / U128,
    "swap_base2quote_fee" / Int64ul,
    "swap_quote_in_amount" / U128,
    "swap_base_out_amount" / U128,
    "swap_quote2base_fee" / Int64ul,
    "base_vault" / Bytes(32),
    "quote_vault" / Bytes(32),
    "base_mint" / Bytes(32),
    "quote_mint" / Bytes(32),
    "lp_mint" / Bytes(32),
    "open_orders" / Bytes(32),
    "market_id" / Bytes(32),
    "market_program_id" / Bytes(32),
    "target_orders" / Bytes(32),
    "withdraw_queue" / Bytes(32),
    "lp_vault" / Bytes(32),
    "owner" / Bytes(32),
    "lp_reserve" / Int64ul,
    Padding(24),
)

ACCOUNT_FLAGS_LAYOUT = BitsSwapped(
    BitStruct(
        "initialized" / Flag,
        "market" / Flag,
        "open_orders" / Flag,
        "request_queue" / Flag,
        "event_queue" / Flag,
        "bids" / Flag,
        "asks" / Flag,
        Const(0, BitsInteger(57)),
    )
)

MARKET_STATE_LAYOUT_V3 = cStruct(
    Padding(5),
    "account_flags" / ACCOUNT_FLAGS_LAYOUT,
    "own_address" / Bytes(32),
    "vault_signer_nonce" / Int64ul,
    "base_mint" / Bytes(32),
    "quote_mint" / Bytes(32),
    "base_vault" / Bytes(32),
    "base_deposits_total" / Int64ul,
    "base_fees_accrued" / Int64ul,
    "quote_vault" / Bytes(32),
    "quote_deposits_total" / Int64ul,
    "quote_fees_accrued" / Int64ul,
    "quote_dust_threshold" / Int64ul,
    "request_queue" / Bytes(32),
    "event_queue" / Bytes(32),
    "bids" / Bytes(32),
    "asks" / Bytes(32),
    "base_lot_size" / Int64ul,
    "quote_lot_size" / Int64ul,
    "fee_rate_bps" / Int64ul,
    "referrer_rebate_accrued" / Int64ul,
    Padding(7),
)

# Order slots (free/bid bitmaps, 128 u128 order ids, 128 u64 client ids) are not read.
OPEN_ORDERS_LAYOUT = cStruct(
    Padding(5),
    "account_flags" / ACCOUNT_FLAGS_LAYOUT,
    "market" / Bytes(32),
    "owner" / Bytes(32),
    "base_token_free" / Int64ul,
    "base_token_total" / Int64ul,
    "quote_token_free" / Int64ul,
    "quote_token_total" / Int64ul,
    Padding(16 + 16 + 16 * 128 + 8 * 128),
    "referrer_rebates_accrued" / Int64ul,
    Padding(7),
)

POOL_STATE_SIZE = LIQUIDITY_STATE_LAYOUT_V4.sizeof()
MARKET_STATE_SIZE = MARKET_STATE_LAYOUT_V3.sizeof()
OPEN_ORDERS_SIZE = OPEN_ORDERS_LAYOUT.sizeof()


def _pk(raw: bytes) -> Pubkey:
    return Pubkey.from_bytes(bytes(raw))


def decode_pool_state(data: bytes) -> PoolState:
    if len(data) != POOL_STATE_SIZE:
        raise DecodeError(
            f"pool account is {len(data)} bytes, expected {POOL_STATE_SIZE}",
            {"layout": "amm_v4"},
        )
    try:
        parsed = LIQUIDITY_STATE_LAYOUT_V4.parse(data)
        return PoolState(
            status=parsed.status,
            nonce=parsed.nonce,
            base_decimals=parsed.base_decimal,
            quote_decimals=parsed.quote_decimal,
            swap_fee_numerator=parsed.swap_fee_numerator,
            swap_fee_denominator=parsed.swap_fee_denominator,
            base_need_take_pnl=parsed.base_need_take_pnl,
            quote_need_take_pnl=parsed.quote_need_take_pnl,
            base_vault=_pk(parsed.base_vault),
            quote_vault=_pk(parsed.quote_vault),
            base_mint=_pk(parsed.base_mint),
            quote_mint=_pk(parsed.quote_mint),
            lp_mint=_pk(parsed.lp_mint),
            open_orders=_pk(parsed.open_orders),
            market_id=_pk(parsed.market_id),
            market_program_id=_pk(parsed.market_program_id),
            target_orders=_pk(parsed.target_orders),
        )
    except (ConstructError, ValueError) as e:
        raise DecodeError(f"pool account decode failed: {e}", {"layout": "amm_v4"}) from e


def decode_market_state(data: bytes) -> MarketState:
    if len(data) < MARKET_STATE_SIZE:
        raise DecodeError(
            f"market account is {len(data)} bytes, expected {MARKET_STATE_SIZE}",
            {"layout": "market_v3"},
        )
    try:
        parsed = MARKET_STATE_LAYOUT_V3.parse(data[:MARKET_STATE_SIZE])
    except ConstructError as e:
        raise DecodeError(f"market account decode failed: {e}", {"layout": "market_v3"}) from e
    if not parsed.account_flags.market:
        raise DecodeError("account is not flagged as a market", {"layout": "market_v3"})
    return MarketState(
        own_address=_pk(parsed.own_address),
        vault_signer_nonce=parsed.vault_signer_nonce,
        base_mint=_pk(parsed.base_mint),
        quote_mint=_pk(parsed.quote_mint),
        base_vault=_pk(parsed.base_vault),
        quote_vault=_pk(parsed.quote_vault),
        request_queue=_pk(parsed.request_queue),
        event_queue=_pk(parsed.event_queue),
        bids=_pk(parsed.bids),
        asks=_pk(parsed.asks),
    )


def decode_open_orders(data: bytes) -> OpenOrdersTotals:
    if len(data) < OPEN_ORDERS_SIZE:
        raise DecodeError(
            f"open orders account is {len(data)} bytes, expected {OPEN_ORDERS_SIZE}",
            {"layout": "open_orders"},
        )
    try:
        parsed = OPEN_ORDERS_LAYOUT.parse(data[:OPEN_ORDERS_SIZE])
    except ConstructError as e:
        raise DecodeError(f"open orders decode failed: {e}", {"layout": "open_orders"}) from e
    if not parsed.account_flags.open_orders:
        raise DecodeError("account is not flagged as open orders", {"layout": "open_orders"})
    return OpenOrdersTotals(
        base_token_total=parsed.base_token_total,
        quote_token_total=parsed.quote_token_total,
    )
