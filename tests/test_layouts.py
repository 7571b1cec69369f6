from __future__ import annotations

import pytest
from solders.pubkey import Pubkey

from conftest import market_bytes, open_orders_bytes, pool_bytes
from rayswap.errors import DecodeError
from rayswap.pools.layouts import (
    MARKET_STATE_SIZE,
    OPEN_ORDERS_SIZE,
    POOL_STATE_SIZE,
    decode_market_state,
    decode_open_orders,
    decode_pool_state,
)


def test_layout_sizes_match_on_chain_accounts() -> None:
    assert POOL_STATE_SIZE == 752
    assert MARKET_STATE_SIZE == 388
    assert OPEN_ORDERS_SIZE == 3228


def test_decode_pool_state_reads_mints_vaults_and_fees() -> None:
    base_mint, quote_mint = Pubkey.new_unique(), Pubkey.new_unique()
    base_vault, quote_vault = Pubkey.new_unique(), Pubkey.new_unique()
    data = pool_bytes(
        status=6,
        base_decimal=6,
        quote_decimal=9,
        base_mint=base_mint,
        quote_mint=quote_mint,
        base_vault=base_vault,
        quote_vault=quote_vault,
        base_need_take_pnl=11,
        quote_need_take_pnl=22,
    )

    state = decode_pool_state(data)

    assert state.base_mint == base_mint
    assert state.quote_mint == quote_mint
    assert state.base_vault == base_vault
    assert state.quote_vault == quote_vault
    assert (state.base_decimals, state.quote_decimals) == (6, 9)
    assert (state.swap_fee_numerator, state.swap_fee_denominator) == (25, 10_000)
    assert (state.base_need_take_pnl, state.quote_need_take_pnl) == (11, 22)


@pytest.mark.parametrize("size", [0, POOL_STATE_SIZE - 1, POOL_STATE_SIZE + 1])
def test_decode_pool_state_rejects_wrong_length(size: int) -> None:
    with pytest.raises(DecodeError):
        decode_pool_state(bytes(size))


def test_decode_market_state_accepts_trailing_padding() -> None:
    market_id = Pubkey.new_unique()
    bids = Pubkey.new_unique()
    data = market_bytes(market_id, 3, bids=bids) + bytes(12)

    market = decode_market_state(data)

    assert market.own_address == market_id
    assert market.vault_signer_nonce == 3
    assert market.bids == bids


def test_decode_market_state_rejects_short_payload() -> None:
    with pytest.raises(DecodeError):
        decode_market_state(bytes(MARKET_STATE_SIZE - 1))


def test_decode_open_orders_totals() -> None:
    totals = decode_open_orders(open_orders_bytes(base_total=7, quote_total=9))
    assert totals.base_token_total == 7
    assert totals.quote_token_total == 9


def test_decode_open_orders_rejects_unflagged_account() -> None:
    with pytest.raises(DecodeError):
        decode_open_orders(bytes(OPEN_ORDERS_SIZE))
