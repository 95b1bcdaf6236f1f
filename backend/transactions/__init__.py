"""Transaction submission with retry, confirmation and error classification."""
from .errors import Verdict, classify, format_for_user, is_retryable_error
from .events import LoggingObserver, SubmissionEvent, SubmissionState
from .ledger import ConfirmationResult, ConsensusReference, LedgerClient, SolanaLedgerClient
from .submitter import (
    ConfirmationTimeoutError,
    OnChainError,
    RetryingSubmitter,
    SubmissionAbortedError,
    SubmissionOptions,
    TransactionCancelledError,
    TransactionError,
    TransactionOutcome,
    backoff_delay,
)
from .config import Settings, load_settings, create_submitter

__all__ = [
    "Verdict",
    "classify",
    "format_for_user",
    "is_retryable_error",
    "LoggingObserver",
    "SubmissionEvent",
    "SubmissionState",
    "ConfirmationResult",
    "ConsensusReference",
    "LedgerClient",
    "SolanaLedgerClient",
    "ConfirmationTimeoutError",
    "OnChainError",
    "RetryingSubmitter",
    "SubmissionAbortedError",
    "SubmissionOptions",
    "TransactionCancelledError",
    "TransactionError",
    "TransactionOutcome",
    "backoff_delay",
    "Settings",
    "load_settings",
    "create_submitter",
]
