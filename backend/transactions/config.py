"""
Environment configuration for transaction submission.

Only the wiring helpers read the environment; RetryingSubmitter and the
classifier take everything as arguments.
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .events import LoggingObserver
from .ledger import SolanaLedgerClient
from .submitter import (
    CONFIRMATION_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY_MS,
    RetryingSubmitter,
    SubmissionOptions,
)

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Transaction settings loaded from the environment."""
    rpc_url: str = DEFAULT_RPC_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    confirmation_timeout: float = CONFIRMATION_TIMEOUT
    environment: str = "production"

    @property
    def verbose(self) -> bool:
        """Detailed retry logging, on in development."""
        return self.environment.lower() == "development"

    def submission_options(self, send_options=None) -> SubmissionOptions:
        return SubmissionOptions(
            max_retries=self.max_retries,
            base_retry_delay_ms=self.retry_delay_ms,
            send_options=send_options,
        )


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """Load settings from .env and the process environment.

    Environment:
        RPC_URL: Solana RPC endpoint (falls back to HELIUS_RPC_URL, then public mainnet)
        TX_MAX_RETRIES: Retries after the first attempt (default 3)
        TX_RETRY_DELAY_MS: Base backoff delay in ms (default 1000)
        TX_CONFIRM_TIMEOUT: Confirmation window per attempt in seconds (default 60)
        ENVIRONMENT: "development" enables verbose retry logs
    """
    load_dotenv(dotenv_path)

    settings = Settings(
        rpc_url=os.getenv("RPC_URL") or os.getenv("HELIUS_RPC_URL") or DEFAULT_RPC_URL,
        max_retries=_int_env("TX_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        retry_delay_ms=_int_env("TX_RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS),
        confirmation_timeout=_float_env("TX_CONFIRM_TIMEOUT", CONFIRMATION_TIMEOUT),
        environment=os.getenv("ENVIRONMENT", "production"),
    )
    # Fail at startup rather than on the first submission
    settings.submission_options()

    logger.info(
        f"Transaction settings: rpc={settings.rpc_url[:50]}, retries={settings.max_retries}, "
        f"delay={settings.retry_delay_ms}ms, timeout={settings.confirmation_timeout:g}s"
    )
    return settings


def create_submitter(settings: Optional[Settings] = None) -> RetryingSubmitter:
    """Wire a Solana ledger client and logging observer into a submitter."""
    settings = settings or load_settings()
    ledger = SolanaLedgerClient(settings.rpc_url)
    return RetryingSubmitter(
        ledger,
        observer=LoggingObserver(verbose=settings.verbose),
        confirmation_timeout=settings.confirmation_timeout,
    )
