"""
Submission state transitions and the logging observer.

The submitter reports every state change to an observer callable instead of
logging inline, so callers can route transitions to logs, audit storage or
test recorders.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from utils.formatting import truncate_signature

from .errors import Verdict, error_text

logger = logging.getLogger(__name__)


class SubmissionState(Enum):
    """States of a single submit() call."""
    ATTEMPTING = "attempting"  # Fresh blockhash fetched, calling send_fn
    SUBMITTED = "submitted"    # send_fn returned a signature
    CONFIRMING = "confirming"  # Waiting for confirmation or timeout
    RETRYING = "retrying"      # Retryable failure, backing off
    SUCCESS = "success"
    TERMINAL = "terminal"      # Fatal failure or attempts exhausted


@dataclass(frozen=True)
class SubmissionEvent:
    """One state transition."""
    state: SubmissionState
    attempt: int  # 0-based
    max_attempts: int
    signature: Optional[str] = None
    error: Any = None
    verdict: Optional[Verdict] = None
    delay: Optional[float] = None  # Seconds, for RETRYING

    @property
    def attempt_label(self) -> str:
        return f"{self.attempt + 1}/{self.max_attempts}"


SubmissionObserver = Callable[[SubmissionEvent], None]


class LoggingObserver:
    """Observer writing transitions to the application logger.

    `verbose` replaces the old "only in development" check: when set, every
    retry is logged as a warning with the raw error.
    """

    def __init__(self, verbose: bool = False, log: Optional[logging.Logger] = None):
        self.verbose = verbose
        self.log = log or logger

    def __call__(self, event: SubmissionEvent):
        state = event.state
        sig = truncate_signature(event.signature)

        if state == SubmissionState.ATTEMPTING:
            if event.attempt > 0:
                self.log.info(f"[TX] 🔄 Attempt {event.attempt_label} - refreshing connection state")
            else:
                self.log.debug(f"[TX] Attempt {event.attempt_label}")
        elif state == SubmissionState.SUBMITTED:
            self.log.info(f"[TX] ✨ Submitted: {sig}")
        elif state == SubmissionState.CONFIRMING:
            self.log.info(f"[TX] ⏳ Waiting for confirmation of {sig}...")
        elif state == SubmissionState.SUCCESS:
            self.log.info(f"[TX] ✅ Confirmed: {sig}")
        elif state == SubmissionState.RETRYING:
            message = error_text(event.error)
            if event.verdict == Verdict.RETRYABLE_NEEDS_FRESH_STATE:
                self.log.info("[TX] 🔧 AccountDidNotSerialize detected - next attempt needs fresh account data")
            if self.verbose:
                self.log.warning(
                    f"[TX] Attempt {event.attempt_label} failed, retrying in "
                    f"{round((event.delay or 0) * 1000)}ms: {message}"
                )
            else:
                self.log.info(f"[TX] ⏳ Retrying in {round((event.delay or 0) * 1000)}ms...")
        elif state == SubmissionState.TERMINAL:
            verdict = event.verdict.value if event.verdict else "none"
            if event.verdict == Verdict.FATAL_USER_CANCELLED:
                self.log.info(f"[TX] Cancelled by user on attempt {event.attempt_label}")
            else:
                self.log.warning(
                    f"[TX] 🛑 Giving up on attempt {event.attempt_label} "
                    f"(verdict={verdict}, signature={sig}): {error_text(event.error)[:200]}"
                )
