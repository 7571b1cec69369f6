"""
service.py - The two operations exposed to front-ends.

    get_pool_summary(pool_id) -> PoolSummary | None
    swap(pool_id, amount, direction) -> bool      direction: 0 buy, 1 sell, 11 sell + close

Neither raises. Failures are logged and reported as None / False.

The submission strategy is chosen once here, from settings, and injected into
the Bot for the life of the process.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from rayswap.config.settings import SwapperSettings
from rayswap.engines.bot import Amount, Bot, BotConfig
from rayswap.engines.execution.ledger import LedgerClient
from rayswap.engines.execution.submission import SubmissionStrategy, build_submission_strategy
from rayswap.engines.instructions import SwapDirection
from rayswap.errors import SwapError
from rayswap.pools.models import PoolSummary
from rayswap.pools.resolver import PoolStateResolver
from rayswap.utils.keypair import load_keypair


class SwapService:
    def __init__(self, bot: Bot, resolver: PoolStateResolver, ledger: LedgerClient, strategy: SubmissionStrategy):
        self.bot = bot
        self.resolver = resolver
        self.ledger = ledger
        self.strategy = strategy

    @classmethod
    def from_settings(cls, settings: SwapperSettings) -> "SwapService":
        """Wire ledger, strategy and bot. Raises ConfigError on a bad wallet or quote token."""
        wallet = load_keypair(settings.wallet.private_key)
        ledger = LedgerClient(
            settings.rpc.endpoint,
            commitment=settings.rpc.commitment,
            confirm_timeout=settings.rpc.confirm_timeout_seconds,
            poll_interval=settings.rpc.poll_interval_seconds,
        )
        strategy = build_submission_strategy(settings, ledger)
        trading = settings.trading
        config = BotConfig(
            wallet=wallet,
            quote_token=trading.quote_token,
            buy_slippage=trading.buy_slippage,
            sell_slippage=trading.sell_slippage,
            max_buy_retries=trading.max_buy_retries,
            max_sell_retries=trading.max_sell_retries,
            compute_unit_limit=trading.compute_unit_limit,
            compute_unit_price=trading.compute_unit_price,
        )
        resolver = PoolStateResolver(ledger)
        bot = Bot(config, ledger, strategy, resolver=resolver)
        return cls(bot, resolver, ledger, strategy)

    async def get_pool_summary(self, pool_id: str) -> Optional[PoolSummary]:
        try:
            return await self.resolver.get_pool_summary(pool_id)
        except SwapError as e:
            logger.error(f"POOL_SUMMARY | error | pool={pool_id} | {type(e).__name__} | {e.describe()}")
            return None
        except Exception as e:
            logger.exception(f"POOL_SUMMARY | unexpected | pool={pool_id} | {e}")
            return None

    async def swap(self, pool_id: str, amount: Amount, direction: int) -> bool:
        try:
            swap_direction = SwapDirection.from_code(direction)
        except SwapError as e:
            logger.warning(f"SWAP | rejected | pool={pool_id} | {e.describe()}")
            return False

        logger.info(f"SWAP | start | pool={pool_id} | amount={amount} | direction={swap_direction.value}")
        try:
            if swap_direction is SwapDirection.BUY:
                ok = await self.bot.buy(pool_id, amount)
            else:
                ok = await self.bot.sell(pool_id, amount, close=swap_direction is SwapDirection.SELL_AND_CLOSE)
        except Exception as e:
            logger.exception(f"SWAP | unexpected | pool={pool_id} | {e}")
            return False

        logger.info(f"SWAP | done | pool={pool_id} | direction={swap_direction.value} | ok={ok}")
        return ok

    async def close(self) -> None:
        await self.strategy.close()
        await self.ledger.close()
