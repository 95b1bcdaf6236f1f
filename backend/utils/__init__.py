"""Utility modules for transaction submission."""
from .formatting import (
    LAMPORTS_PER_SOL,
    lamports_to_sol,
    format_sol,
    format_tx_link,
    truncate_signature,
)

__all__ = [
    "LAMPORTS_PER_SOL",
    "lamports_to_sol",
    "format_sol",
    "format_tx_link",
    "truncate_signature",
]
