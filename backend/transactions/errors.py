"""
Transaction error classification and user-facing messages.

Every failure seen while submitting a transaction is reduced to a Verdict
that tells the submitter whether to retry, and to a sentence that can be
shown to the player as-is. Both functions work on the error's text and are
total: they never raise.
"""
import json
import logging
import re
from enum import Enum
from typing import Any, Optional

from utils.formatting import lamports_to_sol

logger = logging.getLogger(__name__)


class Verdict(Enum):
    """Classification of a failed submission attempt."""
    RETRYABLE = "retryable"
    RETRYABLE_NEEDS_FRESH_STATE = "retryable_needs_fresh_state"
    FATAL_USER_CANCELLED = "fatal_user_cancelled"
    FATAL_PROGRAM_LOGIC = "fatal_program_logic"
    FATAL_OTHER = "fatal_other"

    @property
    def is_retryable(self) -> bool:
        return self in (Verdict.RETRYABLE, Verdict.RETRYABLE_NEEDS_FRESH_STATE)

    @property
    def is_fatal(self) -> bool:
        return not self.is_retryable


USER_CANCELLED_MARKERS = (
    "user rejected",
)

# Checked before the retryable markers: a simulation failure caused by one
# of these will fail again on every attempt.
FAIL_FAST_MARKERS = (
    "insufficient funds",
    "insufficient lamports",
    "invalid program",
    "constraintmut",
    "no second player",
)

FRESH_STATE_MARKERS = (
    "accountdidnotserialize",
    "accountdidnotdeserialize",
)

RETRYABLE_MARKERS = (
    "blockhash not found",
    "blockhashnotfound",
    "simulation failed",
    "transaction simulation failed",
    "network error",
    "network request failed",
    "timeout",
    "timed out",
    "rate limit",
    "429",
    "too many requests",
    "connection refused",
    "connection reset",
    "connectionreset",
    "connectionrefused",
    "fetch failed",
    "rpc response error",
    "failed to get recent blockhash",
    "block height exceeded",
    "blockheight exceeded",
)

CANCELLED_MESSAGE = "Transaction was cancelled by user."
INSUFFICIENT_BALANCE_MESSAGE = "Insufficient SOL balance to cover the bet amount and transaction fees."

# Coinflip program (Anchor) errors raised on business-state conflicts,
# as (lowercased markers, message). Numbers are the program's error codes.
PROGRAM_ERROR_MESSAGES = (
    (("roomnotavailable", "room not available", "room unavailable", "error number: 6002"),
     "This room is no longer available for joining. It may be full, expired, or cancelled by the creator."),
    (("gamealreadystarted", "game already started", "error number: 6001"),
     "Cannot join: This game has already started with another player."),
    (("invalidgamestate", "invalid game state", "error number: 6003"),
     "Game is in an invalid state. Try refreshing the page or leaving the game."),
    (("selectiontimeexpired", "selection time expired", "error number: 6004"),
     'Selection time has expired. Use "Handle Timeout" to resolve the game.'),
    (("error code: insufficientfunds", "error number: 6005"),
     INSUFFICIENT_BALANCE_MESSAGE),
)

PROGRAM_LOGIC_MARKERS = tuple(
    marker for markers, _ in PROGRAM_ERROR_MESSAGES for marker in markers
)

_LAMPORTS_RE = re.compile(r"insufficient lamports (\d+), need (\d+)")
_ANCHOR_CODE_RE = re.compile(r"Error Code: (\w+)")
_CUSTOM_CODE_RE = re.compile(r"\"custom\":\s*(\d{1,10})\b")
_CUSTOM_HEX_RE = re.compile(r"custom program error: 0x([0-9a-f]{1,8})\b")


def error_text(error: Any) -> str:
    """Get the textual description of an error.

    Accepts exceptions, plain strings, on-chain error payloads (dicts/lists,
    serialized as JSON) and None. Exceptions raised without a message
    (TimeoutError(), ConnectionResetError()) are described by their class
    name. Never raises.
    """
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, default=str)
        except (TypeError, ValueError):
            pass
    try:
        text = str(error)
    except Exception:
        try:
            text = repr(error)
        except Exception:
            text = ""
    if not text and isinstance(error, BaseException):
        text = type(error).__name__
    return text


def _match_text(error: Any) -> str:
    """Lowercased error text, with on-chain custom error codes spelled out
    the way Anchor logs them ("error number: 6002")."""
    message = error_text(error).lower()
    codes = [int(code) for code in _CUSTOM_CODE_RE.findall(message)]
    codes += [int(code, 16) for code in _CUSTOM_HEX_RE.findall(message)]
    if codes:
        message += "".join(f" error number: {code}" for code in codes)
    return message


def _contains_any(haystack: str, needles) -> bool:
    return any(needle in haystack for needle in needles)


def classify(error: Any) -> Verdict:
    """Classify a failed attempt. First match wins.

    1. Program-logic rejections (business-state conflicts) never retry.
    2. Wallet approval rejected by the user.
    3. Explicit fail-fast causes (balance, bad program, missing player).
    4. Recoverable transport/consensus conditions; AccountDidNotSerialize
       additionally requires freshly fetched state.
    5. Anything unrecognized is not retried.
    """
    message = _match_text(error)

    if _contains_any(message, PROGRAM_LOGIC_MARKERS):
        return Verdict.FATAL_PROGRAM_LOGIC
    if _contains_any(message, USER_CANCELLED_MARKERS):
        return Verdict.FATAL_USER_CANCELLED
    if _contains_any(message, FAIL_FAST_MARKERS):
        return Verdict.FATAL_OTHER
    if _contains_any(message, FRESH_STATE_MARKERS):
        return Verdict.RETRYABLE_NEEDS_FRESH_STATE
    if _contains_any(message, RETRYABLE_MARKERS):
        return Verdict.RETRYABLE
    return Verdict.FATAL_OTHER


def is_retryable_error(error: Any) -> bool:
    """Check if a transaction error is worth another attempt."""
    return classify(error).is_retryable


def _format_insufficient_lamports(message: str) -> str:
    match = _LAMPORTS_RE.search(message)
    if not match:
        return INSUFFICIENT_BALANCE_MESSAGE
    try:
        available = lamports_to_sol(int(match.group(1)))
        needed = lamports_to_sol(int(match.group(2)))
    except (ValueError, OverflowError):
        return INSUFFICIENT_BALANCE_MESSAGE
    shortage = needed - available
    return (
        f"Insufficient SOL balance. You have {available:.3f} SOL but need {needed:.3f} SOL. "
        f"Please add {shortage:.3f} more SOL to your wallet."
    )


def _format_anchor_error(original: str) -> Optional[str]:
    code_match = _ANCHOR_CODE_RE.search(original)
    if not code_match:
        return None
    detail = "Please try again or contact support."
    if "Error Message: " in original:
        tail = original.split("Error Message: ", 1)[1].split(".", 1)[0].strip()
        if tail:
            detail = tail
    return f"Game error ({code_match.group(1)}): {detail}"


def format_for_user(error: Any) -> str:
    """Format a transaction error for display to the player."""
    original = ""
    try:
        original = error_text(error)
        message = original.lower()

        codes_message = _match_text(error)
        for markers, text in PROGRAM_ERROR_MESSAGES:
            if _contains_any(codes_message, markers):
                return text

        if _contains_any(message, USER_CANCELLED_MARKERS):
            return CANCELLED_MESSAGE

        if "insufficient lamports" in message:
            return _format_insufficient_lamports(message)

        if "blockhash not found" in message:
            return "Network connection issue. Please check your internet connection and try again."
        if "insufficient funds" in message:
            return "Insufficient SOL balance to cover transaction and fees."
        if "rate limit" in message or "429" in message:
            return "Network is busy. Please wait a moment and try again."
        if "timeout" in message or "timed out" in message:
            return "Transaction timed out. Please try again."
        if "invalid program" in message:
            return "Smart contract error. Please contact support."
        if _contains_any(message, FRESH_STATE_MARKERS):
            return 'Game account is corrupted. Try "Handle Timeout" or "Leave Game".'
        if "constraintmut" in message and "player_2" in message:
            return 'Cannot process: Game has no second player. Try "Leave Game" instead.'
        if "no second player" in message:
            return 'This game never had a second player. Use "Leave Game" to exit.'

        if "AnchorError" in original:
            anchor_message = _format_anchor_error(original)
            if anchor_message:
                return anchor_message
    except Exception as e:
        logger.warning(f"[TX_ERROR] Could not format error, using raw message: {e}")

    if original.startswith("Transaction failed"):
        return original
    return f"Transaction failed: {original}"
