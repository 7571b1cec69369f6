"""
ledger.py - Async Solana RPC client for the swap path.

Thin wrapper over solana-py's AsyncClient:
1. Account / token balance / blockhash reads
2. Raw transaction broadcast and simulation
3. Confirmation polling bounded by blockhash validity

Usage:
    ledger = LedgerClient(rpc_url, commitment="confirmed")
    blockhash = await ledger.get_latest_blockhash()
    sig = await ledger.send_raw_transaction(bytes(tx))
    outcome = await ledger.confirm_transaction(sig, blockhash)

Error policy: network failures raise TransportError. Preflight rejections
from send_raw_transaction surface as solana.rpc.core.RPCException so the
caller can report them as an ordinary rejected outcome.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Tuple

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from rayswap.engines.execution.outcome import FailureReason, SubmissionOutcome
from rayswap.errors import NotFound, TransportError


@dataclass(frozen=True)
class BlockhashInfo:
    """Recent blockhash plus the last block height at which it is still valid."""
    blockhash: Hash
    last_valid_block_height: int


class LedgerClient:
    """
    Shared, read-mostly RPC client. Safe to use from concurrent swap calls:
    it holds no per-call state.
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        confirm_timeout: float = 60.0,
        poll_interval: float = 0.5,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment = Commitment(commitment)
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self._client: Optional[AsyncClient] = client

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url, commitment=self.commitment)
        return self._client

    async def close(self):
        """Close RPC client."""
        if self._client:
            await self._client.close()
            self._client = None

    # =========================================================================
    # READS
    # =========================================================================

    async def get_account_info(self, address: Pubkey) -> Optional[bytes]:
        """Raw account data, or None if the account does not exist."""
        client = await self._get_client()
        try:
            resp = await client.get_account_info(address)
        except Exception as e:
            raise TransportError(f"get_account_info failed: {e}", {"address": str(address)}) from e
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def get_token_account_balance(self, address: Pubkey) -> int:
        """Raw (integer) balance of an SPL token account."""
        client = await self._get_client()
        try:
            resp = await client.get_token_account_balance(address)
        except RPCException as e:
            raise NotFound(f"token account unavailable: {e}", {"address": str(address)}) from e
        except Exception as e:
            raise TransportError(
                f"get_token_account_balance failed: {e}", {"address": str(address)}
            ) from e
        return int(resp.value.amount)

    async def get_latest_blockhash(self) -> BlockhashInfo:
        client = await self._get_client()
        try:
            resp = await client.get_latest_blockhash()
        except Exception as e:
            raise TransportError(f"get_latest_blockhash failed: {e}") from e
        return BlockhashInfo(
            blockhash=resp.value.blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def get_block_height(self) -> Optional[int]:
        """Current block height, or None if the poll failed."""
        try:
            client = await self._get_client()
            resp = await client.get_block_height()
            return int(resp.value)
        except Exception as e:
            logger.warning(f"BLOCK_HEIGHT | error | {e}")
            return None

    async def get_signature_status(self, signature: str) -> Optional[dict]:
        """
        Get status of a transaction signature.

        Returns dict with:
            - confirmed: bool
            - finalized: bool
            - error: Optional[str]
        or None if the signature is not known yet or the poll failed.
        """
        try:
            client = await self._get_client()
            result = await client.get_signature_statuses([Signature.from_string(signature)])
        except Exception as e:
            logger.error(f"SIG_STATUS | error | sig={signature[:16]}... | {e}")
            return None

        if not result.value or not result.value[0]:
            return None

        status = result.value[0]
        conf = status.confirmation_status
        return {
            "confirmed": conf in (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized),
            "finalized": conf == TransactionConfirmationStatus.Finalized,
            "error": str(status.err) if status.err else None,
            "slot": status.slot,
        }

    # =========================================================================
    # WRITES
    # =========================================================================

    async def send_raw_transaction(self, raw: bytes, skip_preflight: bool = False) -> str:
        """Broadcast a signed transaction. Preflight rejection raises RPCException."""
        client = await self._get_client()
        opts = TxOpts(skip_preflight=skip_preflight, preflight_commitment=self.commitment)
        try:
            resp = await client.send_raw_transaction(raw, opts=opts)
        except RPCException:
            raise
        except Exception as e:
            raise TransportError(f"send_raw_transaction failed: {e}") from e
        signature = str(resp.value)
        logger.info(f"TX_SENT | sig={signature}")
        return signature

    async def simulate_transaction(self, tx: VersionedTransaction) -> Tuple[Optional[str], List[str]]:
        """Simulate without broadcasting. Returns (error or None, program logs)."""
        client = await self._get_client()
        try:
            resp = await client.simulate_transaction(tx)
        except Exception as e:
            raise TransportError(f"simulate_transaction failed: {e}") from e
        err = resp.value.err
        return (str(err) if err else None), list(resp.value.logs or [])

    # =========================================================================
    # CONFIRMATION
    # =========================================================================

    async def confirm_transaction(self, signature: str, blockhash: BlockhashInfo) -> SubmissionOutcome:
        """
        Poll until confirmed, failed, the blockhash expires or confirm_timeout elapses.

        Never raises for an unconfirmed transaction: expiry and timeout are
        reported as confirmed=False.
        """
        loop = asyncio.get_running_loop()
        start = loop.time()

        while True:
            status = await self.get_signature_status(signature)

            if status is not None:
                if status.get("error"):
                    error_msg = status["error"]
                    logger.error(f"TX_FAILED | sig={signature} | error={error_msg}")
                    return SubmissionOutcome.rejected(signature, error_msg)
                if status.get("confirmed"):
                    logger.info(f"TX_CONFIRMED | sig={signature} | finalized={status.get('finalized')}")
                    return SubmissionOutcome.success(signature)

            height = await self.get_block_height()
            if height is not None and height > blockhash.last_valid_block_height:
                logger.warning(
                    f"TX_EXPIRED | sig={signature} | height={height} | "
                    f"last_valid={blockhash.last_valid_block_height}"
                )
                return SubmissionOutcome.rejected(
                    signature, "blockhash expired before confirmation", FailureReason.BLOCKHASH_EXPIRED
                )

            elapsed = loop.time() - start
            if elapsed > self.confirm_timeout:
                logger.warning(f"TX_TIMEOUT | sig={signature} | elapsed={elapsed:.1f}s")
                return SubmissionOutcome.rejected(
                    signature, f"confirmation_timeout:{elapsed:.1f}s", FailureReason.TIMEOUT
                )

            await asyncio.sleep(self.poll_interval)


__all__ = ["BlockhashInfo", "LedgerClient"]
