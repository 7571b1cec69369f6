"""
outcome.py - Submission outcome and failure classification.

A SubmissionOutcome is produced once per submission attempt and never mutated.
confirmed=False is an ordinary on-chain (or relay) rejection, retryable by the
caller. Transport failures are raised as TransportError instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FailureReason(Enum):
    """Specific failure reasons for error tracking."""
    BLOCKHASH_EXPIRED = "blockhash_expired"
    SIMULATION_FAILED = "simulation_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    PROGRAM_ERROR = "program_error"
    RELAY_REJECTED = "relay_rejected"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


# Raydium AMM v4 custom error 30 (ExceededSlippage)
_RAYDIUM_SLIPPAGE_CODE = "0x1e"


def classify_error(error_msg: str) -> FailureReason:
    """Classify an RPC / relay error message into a failure reason."""
    error_lower = error_msg.lower()

    if "blockhash" in error_lower or "block height exceeded" in error_lower:
        return FailureReason.BLOCKHASH_EXPIRED
    if "slippage" in error_lower or _RAYDIUM_SLIPPAGE_CODE in error_lower:
        return FailureReason.SLIPPAGE_EXCEEDED
    if "insufficient" in error_lower or "not enough" in error_lower:
        return FailureReason.INSUFFICIENT_FUNDS
    if "simulation" in error_lower:
        return FailureReason.SIMULATION_FAILED
    if "program" in error_lower or "instructionerror" in error_lower:
        return FailureReason.PROGRAM_ERROR
    if "timeout" in error_lower:
        return FailureReason.TIMEOUT

    return FailureReason.UNKNOWN


@dataclass(frozen=True)
class SubmissionOutcome:
    signature: Optional[str]
    confirmed: bool
    error: Optional[str] = None
    reason: Optional[FailureReason] = None

    @classmethod
    def success(cls, signature: str) -> "SubmissionOutcome":
        return cls(signature=signature, confirmed=True)

    @classmethod
    def rejected(
        cls,
        signature: Optional[str],
        error: str,
        reason: Optional[FailureReason] = None,
    ) -> "SubmissionOutcome":
        return cls(
            signature=signature,
            confirmed=False,
            error=error,
            reason=reason if reason is not None else classify_error(error),
        )
