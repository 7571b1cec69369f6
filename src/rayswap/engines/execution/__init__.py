"""Ledger access and submission strategies."""

from .outcome import FailureReason, SubmissionOutcome
from .submission import (
    DefaultSubmission,
    JitoSubmission,
    SubmissionStrategy,
    WarpSubmission,
    build_submission_strategy,
)

__all__ = [
    "FailureReason",
    "SubmissionOutcome",
    "SubmissionStrategy",
    "DefaultSubmission",
    "WarpSubmission",
    "JitoSubmission",
    "build_submission_strategy",
]
