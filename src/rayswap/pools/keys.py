"""Pool key derivation: resolved pool + decoded market -> every swap account."""

from __future__ import annotations

from solders.pubkey import Pubkey

from rayswap.errors import BuildError
from rayswap.pools.models import MarketState, PoolKeys, ResolvedPool

RAYDIUM_AMM_V4 = Pubkey.from_string("675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8")
OPENBOOK_MARKET = Pubkey.from_string("srmqPvymJeFKQ4zGQed1GFppgkRHL9kaELCbyksJtPX")

AMM_AUTHORITY_SEED = b"amm authority"


def derive_amm_authority(program_id: Pubkey = RAYDIUM_AMM_V4) -> Pubkey:
    try:
        authority, _bump = Pubkey.find_program_address([AMM_AUTHORITY_SEED], program_id)
    except Exception as e:
        raise BuildError(f"amm authority derivation failed: {e}", {"program": str(program_id)}) from e
    return authority


def derive_market_authority(market_id: Pubkey, nonce: int, market_program_id: Pubkey) -> Pubkey:
    """Serum vault signer: create_program_address([market, u64le(nonce)])."""
    try:
        seeds = [bytes(market_id), int(nonce).to_bytes(8, "little")]
        return Pubkey.create_program_address(seeds, market_program_id)
    except Exception as e:
        raise BuildError(
            f"market authority derivation failed: {e}",
            {"market": str(market_id), "nonce": nonce},
        ) from e


def build_pool_keys(resolved: ResolvedPool, market: MarketState) -> PoolKeys:
    state = resolved.state
    return PoolKeys(
        id=resolved.pool_id,
        base_mint=state.base_mint,
        quote_mint=state.quote_mint,
        lp_mint=state.lp_mint,
        base_decimals=state.base_decimals,
        quote_decimals=state.quote_decimals,
        version=state.version,
        program_id=RAYDIUM_AMM_V4,
        authority=derive_amm_authority(RAYDIUM_AMM_V4),
        open_orders=state.open_orders,
        target_orders=state.target_orders,
        base_vault=state.base_vault,
        quote_vault=state.quote_vault,
        market_program_id=state.market_program_id,
        market_id=state.market_id,
        market_authority=derive_market_authority(
            state.market_id, market.vault_signer_nonce, state.market_program_id
        ),
        market_base_vault=market.base_vault,
        market_quote_vault=market.quote_vault,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
    )
