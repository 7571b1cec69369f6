from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st
from solders.keypair import Keypair
from solders.signature import Signature

from conftest import _ScriptedStrategy, build_pool_env
from rayswap.config.tokens import WSOL
from rayswap.engines.bot import AttemptStatus, Bot, BotConfig, to_raw_amount
from rayswap.engines.execution.outcome import FailureReason, SubmissionOutcome
from rayswap.errors import QuoteError, TransportError


def _bot(env, strategy, wallet=None, events=None, retries: int = 3) -> Bot:
    config = BotConfig(
        wallet=wallet or Keypair(),
        quote_token=WSOL,
        buy_slippage=1,
        sell_slippage=1,
        max_buy_retries=retries,
        max_sell_retries=retries,
    )
    sink = events.append if events is not None else None
    return Bot(config, env.ledger, strategy, event_sink=sink)


def _rejected() -> SubmissionOutcome:
    return SubmissionOutcome.rejected("sig", "custom program error: 0x1e")


@pytest.mark.anyio
async def test_buy_confirmed_on_first_attempt(pool_env) -> None:
    env = pool_env()
    strategy = _ScriptedStrategy([None])
    events = []

    assert await _bot(env, strategy, events=events).buy(env.pool_id, "0.5") is True

    assert len(strategy.submitted) == 1
    assert [e.status for e in events] == [AttemptStatus.CONFIRMED]
    assert events[0].mint == str(env.token_mint)


@pytest.mark.anyio
async def test_exhausts_retries_and_logs_every_attempt(pool_env, log_lines) -> None:
    env = pool_env()
    strategy = _ScriptedStrategy([_rejected()])
    events = []

    ok = await _bot(env, strategy, events=events, retries=3).sell(env.pool_id, 10)

    assert ok is False
    assert len(strategy.submitted) == 3
    assert [e.attempt for e in events] == [1, 2, 3]
    assert all(e.status is AttemptStatus.REJECTED for e in events)
    attempt_lines = [line for line in log_lines if line.startswith("SWAP_ATTEMPT")]
    assert len(attempt_lines) == 3
    assert all("0x1e" in line for line in attempt_lines)
    assert any(line.startswith("SWAP_EXHAUSTED") for line in log_lines)


@pytest.mark.anyio
async def test_retry_succeeds_after_rejection(pool_env) -> None:
    env = pool_env()
    strategy = _ScriptedStrategy([_rejected(), None])

    assert await _bot(env, strategy, retries=5).buy(env.pool_id, 1) is True
    assert len(strategy.submitted) == 2


@pytest.mark.anyio
async def test_each_attempt_reads_fresh_blockhash_and_reserves(pool_env) -> None:
    env = pool_env()
    strategy = _ScriptedStrategy([_rejected()])

    await _bot(env, strategy, retries=4).buy(env.pool_id, 1)

    assert env.ledger.blockhash_calls == 4
    # one read for resolve plus one per attempt for live reserves
    assert env.ledger.account_reads.count(env.pool_id) == 1 + 4


@pytest.mark.anyio
async def test_transport_failure_aborts_without_retry(pool_env) -> None:
    env = pool_env()
    strategy = _ScriptedStrategy([TransportError("relay down")])
    events = []

    assert await _bot(env, strategy, events=events, retries=5).buy(env.pool_id, 1) is False

    assert len(strategy.submitted) == 1
    assert [e.status for e in events] == [AttemptStatus.TRANSPORT_FAILURE]


@pytest.mark.anyio
async def test_empty_pool_aborts_before_submission(pool_env) -> None:
    env = pool_env(token_reserve=0)
    strategy = _ScriptedStrategy([None])

    assert await _bot(env, strategy).buy(env.pool_id, 1) is False
    assert strategy.submitted == []


class _DrainingStrategy(_ScriptedStrategy):
    """Rejects, and empties the pool's base vault while doing so."""

    def __init__(self, env):
        super().__init__([_rejected()])
        self.env = env

    async def submit_and_confirm(self, transaction, wallet, blockhash) -> SubmissionOutcome:
        self.env.ledger.balances[self.env.base_vault] = 0
        return await super().submit_and_confirm(transaction, wallet, blockhash)


@pytest.mark.anyio
async def test_reserves_drained_mid_retry_still_emit_attempt_event(pool_env, log_lines) -> None:
    env = pool_env()
    strategy = _DrainingStrategy(env)
    events = []

    ok = await _bot(env, strategy, events=events, retries=5).buy(env.pool_id, 1)

    assert ok is False
    assert len(strategy.submitted) == 1
    assert [e.status for e in events] == [AttemptStatus.REJECTED, AttemptStatus.ABORTED]
    assert [e.attempt for e in events] == [1, 2]
    assert events[1].signature is None
    assert "QuoteError" in events[1].error
    assert "unusable reserves" in events[1].error
    aborts = [line for line in log_lines if line.startswith("SWAP_ABORT")]
    assert len(aborts) == 1
    assert "attempt=2/5" in aborts[0]
    assert not any(line.startswith("SWAP_EXHAUSTED") for line in log_lines)


@pytest.mark.anyio
async def test_empty_pool_emits_one_aborted_attempt(pool_env) -> None:
    env = pool_env(token_reserve=0)
    events = []

    assert await _bot(env, _ScriptedStrategy([None]), events=events).buy(env.pool_id, 1) is False
    assert [(e.attempt, e.status) for e in events] == [(1, AttemptStatus.ABORTED)]


@pytest.mark.anyio
async def test_missing_pool_aborts_before_submission(pool_env) -> None:
    env = pool_env()
    del env.ledger.accounts[env.pool_id]
    strategy = _ScriptedStrategy([None])

    assert await _bot(env, strategy).sell(env.pool_id, 1, close=True) is False
    assert strategy.submitted == []


@pytest.mark.anyio
async def test_fee_bypass_strategy_gets_no_compute_budget(pool_env) -> None:
    env = pool_env()
    plain = _ScriptedStrategy([None])
    bypass = _ScriptedStrategy([None], fee_bypass=True)

    await _bot(env, plain).buy(env.pool_id, 1)
    await _bot(env, bypass).buy(env.pool_id, 1)

    assert len(plain.submitted[0].message.instructions) == 4
    assert len(bypass.submitted[0].message.instructions) == 2


@pytest.mark.anyio
async def test_submitted_transaction_is_signed_by_wallet(pool_env) -> None:
    env = pool_env()
    wallet = Keypair()
    strategy = _ScriptedStrategy([None])

    await _bot(env, strategy, wallet=wallet).sell(env.pool_id, 1)

    tx = strategy.submitted[0]
    assert tx.message.account_keys[0] == wallet.pubkey()
    assert tx.signatures[0] != Signature.default()


@settings(max_examples=10, deadline=None)
@given(retries=st.integers(min_value=1, max_value=6))
def test_attempts_never_exceed_retry_bound(retries):
    env = build_pool_env()
    strategy = _ScriptedStrategy([SubmissionOutcome.rejected("sig", "timeout", FailureReason.TIMEOUT)])

    ok = asyncio.run(_bot(env, strategy, retries=retries).buy(env.pool_id, 1))

    assert ok is False
    assert len(strategy.submitted) == retries


def test_to_raw_amount_truncates_extra_precision() -> None:
    assert to_raw_amount("1.2345678", 6) == 1_234_567
    assert to_raw_amount(Decimal("0.5"), 9) == 500_000_000
    assert to_raw_amount(3, 0) == 3


@pytest.mark.parametrize("amount", ["abc", "nan", float("inf")])
def test_to_raw_amount_rejects_garbage(amount) -> None:
    with pytest.raises(QuoteError):
        to_raw_amount(amount, 6)


def test_bot_config_requires_at_least_one_attempt() -> None:
    with pytest.raises(ValueError):
        BotConfig(wallet=Keypair(), quote_token=WSOL, max_buy_retries=0)
