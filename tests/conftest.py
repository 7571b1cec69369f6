from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import pytest
from loguru import logger
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from rayswap.config.tokens import WSOL
from rayswap.engines.execution.ledger import BlockhashInfo
from rayswap.engines.execution.outcome import SubmissionOutcome
from rayswap.engines.execution.submission import SubmissionStrategy
from rayswap.errors import NotFound
from rayswap.pools.keys import OPENBOOK_MARKET
from rayswap.pools.layouts import (
    LIQUIDITY_STATE_LAYOUT_V4,
    MARKET_STATE_LAYOUT_V3,
    OPEN_ORDERS_LAYOUT,
)

WSOL_MINT = Pubkey.from_string(WSOL.mint)


@pytest.fixture
def anyio_backend():
    return "asyncio"

POOL_PUBKEY_FIELDS = {
    "base_vault", "quote_vault", "base_mint", "quote_mint", "lp_mint", "open_orders",
    "market_id", "market_program_id", "target_orders", "withdraw_queue", "lp_vault", "owner",
}


def _flags(**set_flags) -> dict:
    names = ["initialized", "market", "open_orders", "request_queue", "event_queue", "bids", "asks"]
    return {name: bool(set_flags.get(name, False)) for name in names}


def pool_bytes(**fields) -> bytes:
    values = {}
    for sc in LIQUIDITY_STATE_LAYOUT_V4.subcons:
        if not sc.name:
            continue
        values[sc.name] = bytes(32) if sc.name in POOL_PUBKEY_FIELDS else 0
    values.update({"swap_fee_numerator": 25, "swap_fee_denominator": 10_000})
    for key, value in fields.items():
        values[key] = bytes(value) if isinstance(value, Pubkey) else value
    return LIQUIDITY_STATE_LAYOUT_V4.build(values)


def market_bytes(market_id: Pubkey, nonce: int, **keys: Pubkey) -> bytes:
    values = {
        "account_flags": _flags(initialized=True, market=True),
        "own_address": bytes(market_id),
        "vault_signer_nonce": nonce,
        "base_deposits_total": 0,
        "base_fees_accrued": 0,
        "quote_deposits_total": 0,
        "quote_fees_accrued": 0,
        "quote_dust_threshold": 0,
        "base_lot_size": 1,
        "quote_lot_size": 1,
        "fee_rate_bps": 0,
        "referrer_rebate_accrued": 0,
    }
    for name in ("base_mint", "quote_mint", "base_vault", "quote_vault", "request_queue", "event_queue", "bids", "asks"):
        values[name] = bytes(keys.get(name) or Pubkey.new_unique())
    return MARKET_STATE_LAYOUT_V3.build(values)


def open_orders_bytes(base_total: int = 0, quote_total: int = 0) -> bytes:
    return OPEN_ORDERS_LAYOUT.build({
        "account_flags": _flags(initialized=True, open_orders=True),
        "market": bytes(Pubkey.new_unique()),
        "owner": bytes(Pubkey.new_unique()),
        "base_token_free": 0,
        "base_token_total": base_total,
        "quote_token_free": 0,
        "quote_token_total": quote_total,
        "referrer_rebates_accrued": 0,
    })


def valid_vault_nonce(market_id: Pubkey, program_id: Pubkey = OPENBOOK_MARKET) -> int:
    for nonce in range(256):
        try:
            Pubkey.create_program_address([bytes(market_id), nonce.to_bytes(8, "little")], program_id)
        except Exception:
            continue
        return nonce
    raise RuntimeError("no valid vault signer nonce")


def signed_transfer_tx(wallet: Keypair, lamports: int = 1) -> VersionedTransaction:
    ix = transfer(TransferParams(from_pubkey=wallet.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=lamports))
    message = MessageV0.try_compile(wallet.pubkey(), [ix], [], Hash.new_unique())
    return VersionedTransaction(message, [wallet])


class _FakeLedger:
    """In-memory ledger: accounts by address, token balances by vault."""

    def __init__(self, accounts: Optional[Dict[Pubkey, bytes]] = None, balances: Optional[Dict[Pubkey, int]] = None):
        self.accounts: Dict[Pubkey, bytes] = dict(accounts or {})
        self.balances: Dict[Pubkey, int] = dict(balances or {})
        self.account_reads: List[Pubkey] = []
        self.blockhash_calls = 0
        self.confirm_calls: List[str] = []
        self.confirm_outcome: Optional[SubmissionOutcome] = None

    @property
    def total_calls(self) -> int:
        return len(self.account_reads) + self.blockhash_calls

    async def get_account_info(self, address: Pubkey) -> Optional[bytes]:
        self.account_reads.append(address)
        return self.accounts.get(address)

    async def get_token_account_balance(self, address: Pubkey) -> int:
        if address not in self.balances:
            raise NotFound("token account unavailable", {"address": str(address)})
        return self.balances[address]

    async def get_latest_blockhash(self) -> BlockhashInfo:
        self.blockhash_calls += 1
        return BlockhashInfo(blockhash=Hash.new_unique(), last_valid_block_height=1_000)

    async def confirm_transaction(self, signature: str, blockhash: BlockhashInfo) -> SubmissionOutcome:
        self.confirm_calls.append(signature)
        return self.confirm_outcome or SubmissionOutcome.success(signature)

    async def close(self):
        return None


class _ScriptedStrategy(SubmissionStrategy):
    """Returns queued outcomes (or raises queued exceptions); repeats the last one."""

    name = "scripted"

    def __init__(self, outcomes, fee_bypass: bool = False):
        self.outcomes = list(outcomes)
        self.fee_bypass = fee_bypass
        self.submitted: List[VersionedTransaction] = []

    async def submit_and_confirm(self, transaction, wallet, blockhash) -> SubmissionOutcome:
        self.submitted.append(transaction)
        item = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(item, Exception):
            raise item
        if item is None:
            return SubmissionOutcome.success(str(transaction.signatures[0]))
        return item


@dataclass
class PoolEnv:
    ledger: _FakeLedger
    pool_id: Pubkey
    token_mint: Pubkey
    quote_mint: Pubkey
    market_id: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    open_orders: Pubkey
    raw_base_mint: Pubkey
    raw_quote_mint: Pubkey


def build_pool_env(
    *,
    token_decimals: int = 6,
    quote_decimals: int = 9,
    token_reserve: int = 1_000_000 * 10**6,
    quote_reserve: int = 500 * 10**9,
    wsol_on_base_side: bool = False,
    oo_base: int = 0,
    oo_quote: int = 0,
    pnl_base: int = 0,
    pnl_quote: int = 0,
    quote_mint: Pubkey = WSOL_MINT,
) -> PoolEnv:
    """A fully wired pool. Reserves are given in token/quote terms, laid out raw on chain."""
    pool_id = Pubkey.new_unique()
    token_mint = Pubkey.new_unique()
    market_id = Pubkey.new_unique()
    base_vault, quote_vault = Pubkey.new_unique(), Pubkey.new_unique()
    open_orders = Pubkey.new_unique()

    if wsol_on_base_side:
        raw_base_mint, raw_quote_mint = quote_mint, token_mint
        raw_base_dec, raw_quote_dec = quote_decimals, token_decimals
        base_amount, quote_amount = quote_reserve, token_reserve
    else:
        raw_base_mint, raw_quote_mint = token_mint, quote_mint
        raw_base_dec, raw_quote_dec = token_decimals, quote_decimals
        base_amount, quote_amount = token_reserve, quote_reserve

    accounts = {
        pool_id: pool_bytes(
            status=6,
            nonce=254,
            base_decimal=raw_base_dec,
            quote_decimal=raw_quote_dec,
            base_need_take_pnl=pnl_base,
            quote_need_take_pnl=pnl_quote,
            base_vault=base_vault,
            quote_vault=quote_vault,
            base_mint=raw_base_mint,
            quote_mint=raw_quote_mint,
            lp_mint=Pubkey.new_unique(),
            open_orders=open_orders,
            market_id=market_id,
            market_program_id=OPENBOOK_MARKET,
            target_orders=Pubkey.new_unique(),
        ),
        market_id: market_bytes(market_id, valid_vault_nonce(market_id)),
        open_orders: open_orders_bytes(oo_base, oo_quote),
    }
    balances = {base_vault: base_amount, quote_vault: quote_amount}
    return PoolEnv(
        ledger=_FakeLedger(accounts, balances),
        pool_id=pool_id,
        token_mint=token_mint,
        quote_mint=quote_mint,
        market_id=market_id,
        base_vault=base_vault,
        quote_vault=quote_vault,
        open_orders=open_orders,
        raw_base_mint=raw_base_mint,
        raw_quote_mint=raw_quote_mint,
    )


@pytest.fixture
def pool_env():
    return build_pool_env


@pytest.fixture
def fake_ledger():
    return _FakeLedger


@pytest.fixture
def log_lines():
    lines = []
    handler_id = logger.add(lambda message: lines.append(message.record["message"]), level="DEBUG")
    yield lines
    logger.remove(handler_id)
