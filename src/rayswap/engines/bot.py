"""
bot.py - Swap orchestrator with a bounded retry loop.

Per call:

    Start -> PlanBuilt -> Submitted -> {Confirmed, Rejected} -> (retry | Exit)

- Confirmed on any attempt returns True immediately.
- Rejected (confirmed=False) logs and retries with fresh reserves and a fresh
  blockhash, up to max_buy_retries / max_sell_retries attempts.
- Transport failure aborts the call. Structural errors (NotFound, DecodeError,
  QuoteError, BuildError) abort too: retrying cannot change them. One raised
  inside an attempt (e.g. reserves drained between attempts) still emits that
  attempt's event with status=aborted.

Attempts run sequentially. Within an attempt the live reserve read and the
blockhash read are independent and run concurrently.

Every attempt emits one SWAP_ATTEMPT event (mint, attempt, signature, error).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import Enum
from typing import Callable, List, Optional, Union

from loguru import logger
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from rayswap.config.tokens import SolanaToken
from rayswap.engines.execution.ledger import BlockhashInfo, LedgerClient
from rayswap.engines.execution.outcome import SubmissionOutcome
from rayswap.engines.execution.submission import SubmissionStrategy
from rayswap.engines.instructions import InstructionBuilder, SwapDirection, derive_ata
from rayswap.errors import QuoteError, SwapError, TransportError
from rayswap.pools.keys import build_pool_keys
from rayswap.pools.models import PoolKeys, ResolvedPool
from rayswap.pools.quote import SwapAmountCalculator
from rayswap.pools.resolver import PoolStateResolver

Amount = Union[int, float, str, Decimal]


# =============================================================================
# CONFIG / RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class BotConfig:
    """Process-wide, read-only. Built once at boot."""
    wallet: Keypair
    quote_token: SolanaToken
    buy_slippage: float = 20.0
    sell_slippage: float = 20.0
    max_buy_retries: int = 10
    max_sell_retries: int = 10
    compute_unit_limit: int = 200_000
    compute_unit_price: int = 20_000

    def __post_init__(self):
        if self.max_buy_retries < 1 or self.max_sell_retries < 1:
            raise ValueError("retry bounds must be >= 1")

    @property
    def quote_mint(self) -> Pubkey:
        return Pubkey.from_string(self.quote_token.mint)


class AttemptStatus(Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TRANSPORT_FAILURE = "transport_failure"
    ABORTED = "aborted"


@dataclass(frozen=True)
class AttemptResult:
    status: AttemptStatus
    outcome: Optional[SubmissionOutcome] = None
    error: Optional[str] = None

    @property
    def signature(self) -> Optional[str]:
        return self.outcome.signature if self.outcome else None


@dataclass(frozen=True)
class AttemptEvent:
    direction: str
    pool_id: str
    mint: str
    attempt: int
    max_attempts: int
    status: AttemptStatus
    signature: Optional[str]
    error: Optional[str]


@dataclass(frozen=True)
class SwapPlan:
    """Built once per attempt from fresh reserves; never reused."""
    direction: SwapDirection
    input_mint: Pubkey
    output_mint: Pubkey
    amount_in: int
    expected_amount_out: int
    min_amount_out: int


def to_raw_amount(amount: Amount, decimals: int) -> int:
    """Human units -> integer base units, truncating extra precision."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise QuoteError(f"invalid amount: {amount!r}") from None
    if not value.is_finite():
        raise QuoteError(f"invalid amount: {amount!r}")
    return int((value * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


# =============================================================================
# BOT
# =============================================================================

class Bot:
    def __init__(
        self,
        config: BotConfig,
        ledger: LedgerClient,
        strategy: SubmissionStrategy,
        resolver: Optional[PoolStateResolver] = None,
        calculator: Optional[SwapAmountCalculator] = None,
        builder: Optional[InstructionBuilder] = None,
        event_sink: Optional[Callable[[AttemptEvent], None]] = None,
    ):
        self.config = config
        self.ledger = ledger
        self.strategy = strategy
        self.resolver = resolver or PoolStateResolver(ledger)
        self.calculator = calculator or SwapAmountCalculator(self.resolver)
        self.builder = builder or InstructionBuilder()
        self.event_sink = event_sink

        logger.info(
            f"BOT | init | wallet={str(config.wallet.pubkey())[:8]}... | "
            f"quote={config.quote_token.symbol} | strategy={strategy.name}"
        )

    async def buy(self, pool_id, amount: Amount) -> bool:
        """Spend `amount` of the quote token on the pool's base token."""
        return await self._run(SwapDirection.BUY, pool_id, amount)

    async def sell(self, pool_id, amount: Amount, close: bool = False) -> bool:
        """Sell `amount` of the base token; close the token account afterwards if `close`."""
        direction = SwapDirection.SELL_AND_CLOSE if close else SwapDirection.SELL
        return await self._run(direction, pool_id, amount)

    async def _run(self, direction: SwapDirection, pool_id, amount: Amount) -> bool:
        mint = "?"
        try:
            resolved = await self.resolver.resolve(pool_id)
            market = await self.resolver.fetch_market(resolved.state.market_id)
            pool_keys = build_pool_keys(resolved, market)
            mint = str(pool_keys.base_mint)

            wallet = self.config.wallet.pubkey()
            if direction is SwapDirection.BUY:
                input_mint, output_mint = self.config.quote_mint, pool_keys.base_mint
                amount_in = to_raw_amount(amount, self.config.quote_token.decimals)
                slippage = self.config.buy_slippage
                max_attempts = self.config.max_buy_retries
            else:
                input_mint, output_mint = pool_keys.base_mint, self.config.quote_mint
                amount_in = to_raw_amount(amount, pool_keys.base_decimals)
                slippage = self.config.sell_slippage
                max_attempts = self.config.max_sell_retries

            ata_in = derive_ata(wallet, input_mint)
            ata_out = derive_ata(wallet, output_mint)

            for attempt in range(1, max_attempts + 1):
                logger.info(
                    f"SWAP_SEND | direction={direction.value} | mint={mint} | attempt={attempt}/{max_attempts}"
                )
                result = await self._attempt(
                    direction, resolved, pool_keys, ata_in, ata_out,
                    input_mint, output_mint, amount_in, slippage,
                )
                self._emit(AttemptEvent(
                    direction=direction.value,
                    pool_id=str(resolved.pool_id),
                    mint=mint,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    status=result.status,
                    signature=result.signature,
                    error=result.error,
                ))

                if result.status is AttemptStatus.CONFIRMED:
                    return True
                if result.status is AttemptStatus.TRANSPORT_FAILURE:
                    return False
                if result.status is AttemptStatus.ABORTED:
                    logger.error(
                        f"SWAP_ABORT | direction={direction.value} | pool={pool_id} | mint={mint} | "
                        f"attempt={attempt}/{max_attempts} | error={result.error}"
                    )
                    return False

            logger.warning(
                f"SWAP_EXHAUSTED | direction={direction.value} | pool={pool_id} | mint={mint} | attempts={max_attempts}"
            )
            return False

        except SwapError as e:
            logger.error(
                f"SWAP_ABORT | direction={direction.value} | pool={pool_id} | mint={mint} | "
                f"error={type(e).__name__} | {e.describe()}"
            )
            return False

    async def _attempt(
        self,
        direction: SwapDirection,
        resolved: ResolvedPool,
        pool_keys: PoolKeys,
        ata_in: Pubkey,
        ata_out: Pubkey,
        input_mint: Pubkey,
        output_mint: Pubkey,
        amount_in: int,
        slippage: float,
    ) -> AttemptResult:
        try:
            quote, blockhash = await asyncio.gather(
                self.calculator.compute_min_output(
                    pool_keys, resolved.is_inverted, amount_in, input_mint, output_mint, slippage,
                ),
                self.ledger.get_latest_blockhash(),
            )
            plan = SwapPlan(
                direction=direction,
                input_mint=input_mint,
                output_mint=output_mint,
                amount_in=quote.amount_in,
                expected_amount_out=quote.amount_out,
                min_amount_out=quote.min_amount_out,
            )

            instructions = self.builder.build(
                direction=plan.direction,
                pool_keys=pool_keys,
                ata_in=ata_in,
                ata_out=ata_out,
                wallet=self.config.wallet.pubkey(),
                output_mint=plan.output_mint,
                amount_in=plan.amount_in,
                min_amount_out=plan.min_amount_out,
                compute_unit_limit=self.config.compute_unit_limit,
                compute_unit_price=self.config.compute_unit_price,
                use_fee_bypass=self.strategy.fee_bypass,
            )
            transaction = self._sign(instructions, blockhash)
            outcome = await self.strategy.submit_and_confirm(transaction, self.config.wallet, blockhash)
        except TransportError as e:
            return AttemptResult(AttemptStatus.TRANSPORT_FAILURE, error=e.describe())
        except SwapError as e:
            return AttemptResult(AttemptStatus.ABORTED, error=f"{type(e).__name__}: {e.describe()}")

        if outcome.confirmed:
            return AttemptResult(AttemptStatus.CONFIRMED, outcome=outcome)
        return AttemptResult(AttemptStatus.REJECTED, outcome=outcome, error=outcome.error)

    def _sign(self, instructions: List[Instruction], blockhash: BlockhashInfo) -> VersionedTransaction:
        wallet = self.config.wallet
        try:
            message = MessageV0.try_compile(wallet.pubkey(), instructions, [], blockhash.blockhash)
            return VersionedTransaction(message, [wallet])
        except Exception as e:
            raise TransportError(f"signing failed: {e}") from e

    def _emit(self, event: AttemptEvent) -> None:
        message = (
            f"SWAP_ATTEMPT | direction={event.direction} | mint={event.mint} | "
            f"attempt={event.attempt}/{event.max_attempts} | status={event.status.value} | "
            f"sig={event.signature} | error={event.error}"
        )
        bound = logger.bind(
            mint=event.mint,
            attempt=event.attempt,
            signature=event.signature,
            error=event.error,
        )
        if event.status is AttemptStatus.CONFIRMED:
            bound.info(message)
        elif event.status is AttemptStatus.REJECTED:
            bound.warning(message)
        else:
            bound.error(message)

        if self.event_sink is not None:
            self.event_sink(event)
