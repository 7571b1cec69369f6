"""
Error taxonomy for swap execution.

Structural errors abort the call that raised them and are never retried.
An on-chain rejection is NOT an exception: it is a confirmed=False outcome
consumed by the retry loop (see engines.bot.AttemptStatus).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SwapError(Exception):
    """Base class. `context` carries pool/mint identity for logging."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context: Dict[str, Any] = dict(context or {})

    def describe(self) -> str:
        if not self.context:
            return str(self)
        fields = " | ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self} | {fields}"


class NotFound(SwapError):
    """Requested account does not exist."""


class InvalidAddress(SwapError):
    """Input is not a well-formed base58 account address; nothing was looked up."""


class DecodeError(SwapError):
    """Account bytes do not match the expected layout."""


class QuoteError(SwapError):
    """Reserves or decimals unusable for computing an output amount."""


class BuildError(SwapError):
    """An instruction account could not be derived or an amount is out of range."""


class TransportError(SwapError):
    """Signing or network submission failed unexpectedly."""


class UnsupportedDirection(SwapError):
    """Direction code outside {0, 1, 11}."""


class ConfigError(SwapError):
    """Settings or wallet secret invalid. Raised at startup only."""
