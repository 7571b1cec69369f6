"""
submission.py - Interchangeable submission strategies.

Every strategy turns a signed swap transaction into a SubmissionOutcome:

    DefaultSubmission  broadcast through RPC, poll until confirmed or the blockhash expires
    WarpSubmission     fee transfer + swap sent to the Warp relay
    JitoSubmission     tip transfer + swap sent as a bundle to the Jito block engines

Warp and Jito pay priority out-of-band, so they set fee_bypass and the
instruction builder leaves out compute budget instructions.

Selection happens once per process (build_submission_strategy); the
orchestrator only sees the SubmissionStrategy contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

import base58
import httpx
from loguru import logger
from solana.constants import LAMPORTS_PER_SOL
from solana.rpc.core import RPCException
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from rayswap.config.settings import SwapperSettings
from rayswap.engines.execution.ledger import BlockhashInfo, LedgerClient
from rayswap.engines.execution.outcome import FailureReason, SubmissionOutcome
from rayswap.engines.execution.relays import WARP_FEE_WALLET, WARP_HTTP_TIMEOUT, JitoBlockEngine, WarpRelay
from rayswap.errors import ConfigError, TransportError

# Jito tips are capped regardless of the tip floor.
MAX_JITO_TIP_SOL = 0.1


def sol_to_lamports(amount_sol: float) -> int:
    return int(Decimal(str(amount_sol)) * LAMPORTS_PER_SOL)


def signature_of(transaction: VersionedTransaction) -> str:
    return str(transaction.signatures[0])


def encode_b58(transaction: VersionedTransaction) -> str:
    return base58.b58encode(bytes(transaction)).decode("ascii")


def build_transfer_tx(
    wallet: Keypair,
    to: Pubkey,
    lamports: int,
    blockhash: BlockhashInfo,
) -> VersionedTransaction:
    """Signed single-transfer v0 transaction on the same blockhash as the swap."""
    try:
        ix = transfer(TransferParams(from_pubkey=wallet.pubkey(), to_pubkey=to, lamports=lamports))
        message = MessageV0.try_compile(wallet.pubkey(), [ix], [], blockhash.blockhash)
        return VersionedTransaction(message, [wallet])
    except Exception as e:
        raise TransportError(f"fee transfer signing failed: {e}", {"to": str(to)}) from e


class SubmissionStrategy(ABC):
    """Signed transaction in, observed outcome out."""

    name: str = "abstract"
    fee_bypass: bool = False

    @abstractmethod
    async def submit_and_confirm(
        self,
        transaction: VersionedTransaction,
        wallet: Keypair,
        blockhash: BlockhashInfo,
    ) -> SubmissionOutcome:
        ...

    async def close(self) -> None:
        return None


class DefaultSubmission(SubmissionStrategy):
    name = "default"
    fee_bypass = False

    def __init__(self, ledger: LedgerClient, simulate: bool = False):
        self.ledger = ledger
        self.simulate = simulate

    async def submit_and_confirm(self, transaction, wallet, blockhash) -> SubmissionOutcome:
        signature = signature_of(transaction)

        if self.simulate:
            err, logs = await self.ledger.simulate_transaction(transaction)
            for line in logs:
                logger.debug(f"SIMULATE | {line}")
            if err:
                logger.warning(f"SIMULATE | failed | sig={signature} | error={err}")
                return SubmissionOutcome.rejected(signature, err, FailureReason.SIMULATION_FAILED)
            logger.info(f"SIMULATE | ok | sig={signature}")
            return SubmissionOutcome.success(signature)

        try:
            signature = await self.ledger.send_raw_transaction(bytes(transaction))
        except RPCException as e:
            logger.warning(f"TX_REJECTED | preflight | sig={signature} | {e}")
            return SubmissionOutcome.rejected(signature, str(e))

        return await self.ledger.confirm_transaction(signature, blockhash)


class WarpSubmission(SubmissionStrategy):
    name = "warp"
    fee_bypass = True

    def __init__(self, ledger: LedgerClient, relay: WarpRelay, fee_sol: float):
        if fee_sol <= 0:
            raise ConfigError("warp fee must be positive")
        self.ledger = ledger
        self.relay = relay
        self.fee_sol = fee_sol
        self.fee_wallet = Pubkey.from_string(WARP_FEE_WALLET)

    async def submit_and_confirm(self, transaction, wallet, blockhash) -> SubmissionOutcome:
        swap_signature = signature_of(transaction)
        fee_lamports = sol_to_lamports(self.fee_sol)
        fee_tx = build_transfer_tx(wallet, self.fee_wallet, fee_lamports, blockhash)
        logger.debug(f"WARP | fee_lamports={fee_lamports} | sig={swap_signature}")

        try:
            resp = await self.relay.execute([encode_b58(fee_tx), encode_b58(transaction)], blockhash)
        except httpx.HTTPError as e:
            raise TransportError(f"warp relay unreachable: {e}", {"sig": swap_signature}) from e

        signature = resp.signature or swap_signature
        if resp.confirmed:
            logger.info(f"TX_CONFIRMED | relay=warp | sig={signature}")
            return SubmissionOutcome.success(signature)
        if resp.error:
            logger.warning(f"TX_REJECTED | relay=warp | sig={signature} | error={resp.error}")
            return SubmissionOutcome.rejected(signature, resp.error)

        return await self.ledger.confirm_transaction(swap_signature, blockhash)

    async def close(self) -> None:
        await self.relay.close()


class JitoSubmission(SubmissionStrategy):
    name = "jito"
    fee_bypass = True

    def __init__(
        self,
        ledger: LedgerClient,
        engine: JitoBlockEngine,
        fee_sol: float,
        use_tip_floor: bool = False,
        max_tip_sol: float = MAX_JITO_TIP_SOL,
    ):
        if fee_sol <= 0:
            raise ConfigError("jito tip must be positive")
        self.ledger = ledger
        self.engine = engine
        self.fee_sol = fee_sol
        self.use_tip_floor = use_tip_floor
        self.max_tip_sol = max_tip_sol

    async def tip_lamports(self) -> int:
        tip: float = self.fee_sol
        if self.use_tip_floor:
            floor: Optional[float] = await self.engine.get_tip_floor()
            if floor is not None and floor > 0:
                tip = floor
        return sol_to_lamports(min(tip, self.max_tip_sol))

    async def submit_and_confirm(self, transaction, wallet, blockhash) -> SubmissionOutcome:
        swap_signature = signature_of(transaction)
        tip_account = Pubkey.from_string(await self.engine.random_tip_account())
        tip_lamports = await self.tip_lamports()
        tip_tx = build_transfer_tx(wallet, tip_account, tip_lamports, blockhash)
        logger.debug(f"JITO | tip_account={tip_account} | tip_lamports={tip_lamports} | sig={swap_signature}")

        submission = await self.engine.send_bundle([encode_b58(tip_tx), encode_b58(transaction)])

        if submission.accepted:
            return await self.ledger.confirm_transaction(swap_signature, blockhash)
        if submission.all_transport_failed:
            raise TransportError(
                "no block engine reachable",
                {"sig": swap_signature, "errors": "; ".join(submission.transport_errors.values())},
            )
        detail = "; ".join(sorted(set(submission.rejections.values())))
        logger.warning(f"TX_REJECTED | relay=jito | sig={swap_signature} | error={detail}")
        return SubmissionOutcome.rejected(swap_signature, detail, FailureReason.RELAY_REJECTED)

    async def close(self) -> None:
        await self.engine.close()


def build_submission_strategy(settings: SwapperSettings, ledger: LedgerClient) -> SubmissionStrategy:
    """Pick the process-wide strategy from executor.kind.

    Simulation only exists on the RPC path, so simulate forces DefaultSubmission
    whatever the configured kind; a relay is never handed a real transaction then.
    """
    executor = settings.executor
    if executor.simulate:
        if executor.kind != "default":
            logger.warning(f"SUBMISSION | simulate_overrides_executor | kind={executor.kind}")
        strategy: SubmissionStrategy = DefaultSubmission(ledger, simulate=True)
    elif executor.kind == "warp":
        timeout = min(WARP_HTTP_TIMEOUT, settings.rpc.confirm_timeout_seconds)
        relay = WarpRelay(url=executor.warp_url, http_timeout=timeout, proxy=executor.http_proxy)
        strategy = WarpSubmission(ledger, relay, executor.custom_fee)
    elif executor.kind == "jito":
        engine = JitoBlockEngine(endpoints=executor.jito_endpoints, proxy=executor.http_proxy)
        strategy = JitoSubmission(ledger, engine, executor.custom_fee, use_tip_floor=executor.jito_dynamic_tip)
    else:
        strategy = DefaultSubmission(ledger, simulate=False)

    logger.info(f"SUBMISSION | strategy={strategy.name} | fee_bypass={strategy.fee_bypass}")
    return strategy
