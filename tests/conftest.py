"""
Shared fakes for submitter tests. No network access.
"""
import asyncio

import pytest

from transactions.ledger import ConfirmationResult, ConsensusReference
from transactions.submitter import RetryingSubmitter

# Returned by FakeLedger.await_confirmation scripts to never resolve
HANG = object()


class FakeLedger:
    """LedgerClient handing out a new blockhash per call."""

    def __init__(self, confirmations=None, reference_errors=None):
        self.references = []
        self.confirm_calls = []
        self._confirmations = list(confirmations or [])
        self._reference_errors = list(reference_errors or [])

    async def get_current_reference(self, commitment="confirmed"):
        if self._reference_errors:
            error = self._reference_errors.pop(0)
            if error is not None:
                raise error
        n = len(self.references) + 1
        reference = ConsensusReference(blockhash=f"blockhash-{n}", last_valid_block_height=1000 + n)
        self.references.append(reference)
        return reference

    async def await_confirmation(self, signature, reference, commitment="confirmed"):
        self.confirm_calls.append((signature, reference, commitment))
        result = self._confirmations.pop(0) if self._confirmations else ConfirmationResult()
        if result is HANG:
            await asyncio.Event().wait()
        return result


class ScriptedSend:
    """Send function returning or raising the scripted outcomes in order.

    The last outcome repeats once the script runs out.
    """

    def __init__(self, *outcomes):
        self.outcomes = outcomes
        self.calls = 0

    async def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    """Drop-in for asyncio.sleep that only records virtual time."""

    def __init__(self, on_sleep=None):
        self.calls = []
        self.on_sleep = on_sleep

    async def __call__(self, delay):
        self.calls.append(delay)
        if self.on_sleep:
            self.on_sleep(delay)

    @property
    def total(self):
        return sum(self.calls)


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def states(self):
        return [e.state for e in self.events]

    def of(self, state):
        return [e for e in self.events if e.state == state]


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def make_submitter(sleep, recorder):
    def _make(ledger, **kwargs):
        kwargs.setdefault("observer", recorder)
        kwargs.setdefault("sleep", sleep)
        kwargs.setdefault("confirmation_timeout", 0.05)
        return RetryingSubmitter(ledger, **kwargs)
    return _make
