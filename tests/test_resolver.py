from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st
from solders.pubkey import Pubkey

from conftest import build_pool_env
from rayswap.errors import DecodeError, InvalidAddress, NotFound
from rayswap.pools.keys import build_pool_keys
from rayswap.pools.resolver import PoolStateResolver, invert_pool_state


@pytest.mark.anyio
async def test_resolve_inverts_wsol_base_pool_once(pool_env) -> None:
    env = pool_env(wsol_on_base_side=True, token_decimals=6, quote_decimals=9)
    resolved = await PoolStateResolver(env.ledger).resolve(str(env.pool_id))

    assert resolved.is_inverted is True
    assert resolved.state.base_mint == env.token_mint
    assert resolved.state.quote_mint == env.quote_mint
    assert (resolved.state.base_decimals, resolved.state.quote_decimals) == (6, 9)
    # vaults stay in raw on-chain order
    assert resolved.state.base_vault == env.base_vault
    assert resolved.state.quote_vault == env.quote_vault


@pytest.mark.anyio
async def test_resolve_keeps_token_base_pool_as_is(pool_env) -> None:
    env = pool_env(wsol_on_base_side=False)
    resolved = await PoolStateResolver(env.ledger).resolve(env.pool_id)

    assert resolved.is_inverted is False
    assert resolved.state.base_mint == env.token_mint
    assert resolved.state.quote_mint == env.quote_mint


@settings(max_examples=25, deadline=None)
@given(
    token_decimals=st.integers(min_value=0, max_value=18),
    quote_decimals=st.integers(min_value=0, max_value=18),
    wsol_on_base_side=st.booleans(),
)
def test_resolved_pool_always_has_token_on_base_side(token_decimals, quote_decimals, wsol_on_base_side):
    env = build_pool_env(
        token_decimals=token_decimals,
        quote_decimals=quote_decimals,
        wsol_on_base_side=wsol_on_base_side,
    )
    resolved = asyncio.run(PoolStateResolver(env.ledger).resolve(env.pool_id))

    assert resolved.is_inverted is wsol_on_base_side
    assert resolved.state.base_mint == env.token_mint
    assert resolved.state.base_decimals == token_decimals
    assert resolved.state.quote_decimals == quote_decimals


def test_invert_pool_state_twice_is_identity(pool_env) -> None:
    env = pool_env(wsol_on_base_side=True)
    resolved = asyncio.run(PoolStateResolver(env.ledger).resolve(env.pool_id))
    assert invert_pool_state(invert_pool_state(resolved.state)) == resolved.state


@pytest.mark.anyio
async def test_resolve_missing_account_raises_not_found(fake_ledger) -> None:
    with pytest.raises(NotFound):
        await PoolStateResolver(fake_ledger()).resolve(Pubkey.new_unique())


@pytest.mark.anyio
@pytest.mark.parametrize("address", ["not-a-pubkey", "", "111", "0OIl" * 11])
async def test_malformed_address_is_invalid_not_missing(fake_ledger, address: str) -> None:
    ledger = fake_ledger()
    resolver = PoolStateResolver(ledger)
    with pytest.raises(InvalidAddress) as excinfo:
        await resolver.resolve(address)
    assert not isinstance(excinfo.value, NotFound)
    with pytest.raises(InvalidAddress):
        await resolver.get_pool_summary(address)
    assert ledger.account_reads == []


@pytest.mark.anyio
async def test_resolve_wrong_sized_account_raises_decode_error(fake_ledger) -> None:
    pool_id = Pubkey.new_unique()
    ledger = fake_ledger({pool_id: bytes(100)})
    with pytest.raises(DecodeError):
        await PoolStateResolver(ledger).resolve(pool_id)


@pytest.mark.anyio
async def test_live_info_nets_open_orders_and_pending_pnl(pool_env) -> None:
    env = pool_env(
        token_reserve=1_000,
        quote_reserve=2_000,
        oo_base=30,
        oo_quote=40,
        pnl_base=5,
        pnl_quote=7,
    )
    resolver = PoolStateResolver(env.ledger)
    resolved = await resolver.resolve(env.pool_id)
    pool_keys = build_pool_keys(resolved, await resolver.fetch_market(env.market_id))

    info = await resolver.fetch_live_info(pool_keys)

    assert info.base_reserve == 1_000 + 30 - 5
    assert info.quote_reserve == 2_000 + 40 - 7
    assert (info.fee_numerator, info.fee_denominator) == (25, 10_000)


@pytest.mark.anyio
async def test_live_info_is_raw_order_for_inverted_pool(pool_env) -> None:
    env = pool_env(wsol_on_base_side=True, token_reserve=1_000, quote_reserve=2_000)
    resolver = PoolStateResolver(env.ledger)
    resolved = await resolver.resolve(env.pool_id)
    pool_keys = build_pool_keys(resolved, await resolver.fetch_market(env.market_id))

    info = await resolver.fetch_live_info(pool_keys)

    # raw base vault holds wrapped SOL
    assert info.base_reserve == 2_000
    assert info.quote_reserve == 1_000
    assert (info.base_decimals, info.quote_decimals) == (9, 6)


@pytest.mark.anyio
async def test_pool_summary_human_units_and_price(pool_env) -> None:
    env = pool_env(token_reserve=1_000_000 * 10**6, quote_reserve=500 * 10**9)
    summary = await PoolStateResolver(env.ledger).get_pool_summary(str(env.pool_id))

    assert summary.base == Decimal(1_000_000)
    assert summary.quote == Decimal(500)
    assert summary.price == Decimal("0.0005")
    assert summary.to_dict()["pool_id"] == str(env.pool_id)


@pytest.mark.anyio
async def test_pool_summary_price_is_none_for_empty_base(pool_env) -> None:
    env = pool_env(token_reserve=0, quote_reserve=10**9)
    summary = await PoolStateResolver(env.ledger).get_pool_summary(env.pool_id)
    assert summary.base == 0
    assert summary.price is None
    assert summary.to_dict()["price"] is None


@pytest.mark.anyio
async def test_pool_summary_missing_vault_raises_not_found(pool_env) -> None:
    env = pool_env()
    del env.ledger.balances[env.quote_vault]
    with pytest.raises(NotFound):
        await PoolStateResolver(env.ledger).get_pool_summary(env.pool_id)
