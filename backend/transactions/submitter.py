"""
Retrying transaction submission with confirmation.

submit() runs one independent loop per call:

    ATTEMPTING -> SUBMITTED -> CONFIRMING -> SUCCESS
                                          -> RETRYING -> ATTEMPTING
                                          -> TERMINAL

Every attempt fetches its own blockhash and confirms against it. A failed
attempt is classified; fatal verdicts end the call immediately, retryable
ones back off exponentially (with jitter) until max_retries is used up.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from utils.formatting import format_tx_link

from .errors import CANCELLED_MESSAGE, Verdict, classify, error_text, format_for_user
from .events import SubmissionEvent, SubmissionObserver, SubmissionState
from .ledger import CONFIRMED, ConsensusReference, LedgerClient, SendFn

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000
MAX_JITTER_MS = 500

CONFIRMATION_TIMEOUT = 60.0  # Seconds, fresh window per attempt
CONFIRM_SETTLE_DELAY = 1.0   # After confirmation, before returning
RETRY_SETTLE_DELAY = 0.3     # Before every attempt after the first

ABORTED_MESSAGE = "Transaction submission was aborted."


class TransactionError(Exception):
    """Terminal submission failure.

    str(error) is the user-facing message; `cause` is the raw error for logs.
    `signature` is the last signature obtained, or None if no attempt got
    that far.
    """

    def __init__(
        self,
        message: str,
        cause: Any = None,
        verdict: Optional[Verdict] = None,
        signature: Optional[str] = None,
        attempts: int = 0,
    ):
        super().__init__(message)
        self.user_message = message
        self.cause = cause
        self.verdict = verdict
        self.signature = signature
        self.attempts = attempts


class TransactionCancelledError(TransactionError):
    """The user rejected the wallet approval."""


class SubmissionAbortedError(TransactionError):
    """The caller set the cancel event while submit() was suspended."""


class ConfirmationTimeoutError(Exception):
    """Confirmation did not arrive within the attempt's window."""

    def __init__(self, signature: str, timeout: float):
        super().__init__(f"Transaction confirmation timeout after {timeout:g}s: {signature}")
        self.signature = signature


class OnChainError(Exception):
    """The ledger reported the transaction as failed."""

    def __init__(self, signature: str, err: Any):
        super().__init__(f"Transaction failed on-chain: {error_text(err)}")
        self.signature = signature
        self.err = err


@dataclass(frozen=True)
class SubmissionOptions:
    """Per-call options.

    `send_options` is never read by the submitter; the caller passes it into
    its own send function (e.g. `SolanaLedgerClient.transfer_sender(opts=...)`).
    """
    max_retries: int = DEFAULT_MAX_RETRIES
    base_retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    send_options: Any = None
    cancel_event: Optional[asyncio.Event] = None

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_retry_delay_ms <= 0:
            raise ValueError(f"base_retry_delay_ms must be > 0, got {self.base_retry_delay_ms}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass(frozen=True)
class TransactionOutcome:
    """Result of submit_for_outcome()."""
    signature: Optional[str] = None
    message: Optional[str] = None
    error: Optional[TransactionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "success": self.ok,
            "signature": self.signature,
            "message": self.message,
            "explorer_url": format_tx_link(self.signature) if self.signature else None,
            "verdict": self.error.verdict.value if self.error and self.error.verdict else None,
        }


def backoff_delay(attempt: int, base_ms: int, jitter_ms: Optional[float] = None) -> float:
    """Delay in seconds before the retry following `attempt` (0-based)."""
    if jitter_ms is None:
        jitter_ms = random.uniform(0, MAX_JITTER_MS)
    return (base_ms * 2 ** attempt + jitter_ms) / 1000


class RetryingSubmitter:
    """Submit transactions with retry, backoff and confirmation timeout.

    Holds no per-call state; concurrent submit() calls are independent.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        observer: Optional[SubmissionObserver] = None,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
        confirm_settle_delay: float = CONFIRM_SETTLE_DELAY,
        retry_settle_delay: float = RETRY_SETTLE_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.observer = observer
        self.confirmation_timeout = confirmation_timeout
        self.confirm_settle_delay = confirm_settle_delay
        self.retry_settle_delay = retry_settle_delay
        self.sleep = sleep

    def _emit(self, event: SubmissionEvent):
        if self.observer is None:
            return
        try:
            self.observer(event)
        except Exception as e:
            logger.error(f"[TX] Observer failed on {event.state.value}: {e}", exc_info=True)

    async def _wait(self, coro: Awaitable[Any], options: SubmissionOptions):
        """Await `coro`, ending the call if the cancel event fires first."""
        event = options.cancel_event
        if event is None:
            return await coro
        if event.is_set():
            if asyncio.iscoroutine(coro):
                coro.close()
            raise SubmissionAbortedError(ABORTED_MESSAGE)

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if task in done:
            return task.result()
        task.cancel()
        raise SubmissionAbortedError(ABORTED_MESSAGE)

    async def _confirm(self, signature: str, reference: ConsensusReference):
        """Race confirmation against the attempt's timeout."""
        try:
            result = await asyncio.wait_for(
                self.ledger.await_confirmation(signature, reference, CONFIRMED),
                timeout=self.confirmation_timeout,
            )
        except asyncio.TimeoutError:
            raise ConfirmationTimeoutError(signature, self.confirmation_timeout) from None
        if result.err is not None:
            raise OnChainError(signature, result.err)

    def _terminal(self, error: Any, verdict: Verdict, attempt: int, max_attempts: int, signature: Optional[str]):
        self._emit(SubmissionEvent(
            SubmissionState.TERMINAL, attempt, max_attempts,
            signature=signature, error=error, verdict=verdict,
        ))
        if verdict == Verdict.FATAL_USER_CANCELLED:
            return TransactionCancelledError(
                CANCELLED_MESSAGE, cause=error, verdict=verdict, signature=signature, attempts=attempt + 1,
            )
        return TransactionError(
            format_for_user(error), cause=error, verdict=verdict, signature=signature, attempts=attempt + 1,
        )

    async def submit(self, send_fn: SendFn, options: Optional[SubmissionOptions] = None) -> str:
        """Send and confirm a transaction, retrying transient failures.

        Args:
            send_fn: Zero-argument coroutine function that signs and broadcasts
                the transaction and returns its signature. Called once per
                attempt; it must re-derive any account state it depends on.
            options: Retry settings (defaults: 3 retries, 1000ms base delay)

        Returns:
            The confirmed transaction signature.

        Raises:
            TransactionError: fatal verdict or attempts exhausted. Its message
                is ready for display; the raw error is in `cause`.
        """
        options = options or SubmissionOptions()
        max_attempts = options.max_attempts
        last_signature: Optional[str] = None
        attempts_started = 0
        delay: Optional[float] = None

        for attempt in range(max_attempts):
            signature: Optional[str] = None
            try:
                if delay is not None:
                    await self._wait(self.sleep(delay), options)

                self._emit(SubmissionEvent(SubmissionState.ATTEMPTING, attempt, max_attempts))
                attempts_started = attempt + 1
                reference = await self._wait(self.ledger.get_current_reference(CONFIRMED), options)
                if attempt > 0:
                    await self._wait(self.sleep(self.retry_settle_delay), options)

                signature = await self._wait(send_fn(), options)
                last_signature = signature
                self._emit(SubmissionEvent(SubmissionState.SUBMITTED, attempt, max_attempts, signature=signature))

                self._emit(SubmissionEvent(SubmissionState.CONFIRMING, attempt, max_attempts, signature=signature))
                await self._wait(self._confirm(signature, reference), options)

                # Confirmed on-chain: the settle delay is not abortable
                await self.sleep(self.confirm_settle_delay)
                self._emit(SubmissionEvent(SubmissionState.SUCCESS, attempt, max_attempts, signature=signature))
                return signature

            except SubmissionAbortedError as e:
                e.attempts = attempts_started
                e.signature = last_signature
                self._emit(SubmissionEvent(
                    SubmissionState.TERMINAL, attempt, max_attempts, signature=last_signature, error=e,
                ))
                raise
            except Exception as e:
                verdict = classify(e)

                if verdict.is_fatal or attempt == max_attempts - 1:
                    raise self._terminal(e, verdict, attempt, max_attempts, last_signature) from e

                delay = backoff_delay(attempt, options.base_retry_delay_ms)
                self._emit(SubmissionEvent(
                    SubmissionState.RETRYING, attempt, max_attempts,
                    signature=signature, error=e, verdict=verdict, delay=delay,
                ))

    async def submit_for_outcome(self, send_fn: SendFn, options: Optional[SubmissionOptions] = None) -> TransactionOutcome:
        """Like submit(), but returns a TransactionOutcome instead of raising."""
        try:
            signature = await self.submit(send_fn, options)
        except TransactionError as e:
            return TransactionOutcome(signature=e.signature, message=e.user_message, error=e)
        return TransactionOutcome(signature=signature)
