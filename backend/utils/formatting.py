"""
Formatting utilities for transaction display.
"""
from typing import Optional

LAMPORTS_PER_SOL = 1_000_000_000


def lamports_to_sol(lamports: int) -> float:
    """Convert lamports (native subunit) to SOL."""
    return lamports / LAMPORTS_PER_SOL


def format_sol(amount: float) -> str:
    """Format SOL amount for display."""
    if amount >= 1000:
        return f"{amount:,.2f}"
    elif amount >= 1:
        return f"{amount:.4f}"
    else:
        return f"{amount:.6f}"


def format_tx_link(signature: str, cluster: str = "mainnet") -> str:
    """Format Solana transaction explorer link."""
    link = f"https://solscan.io/tx/{signature}"
    if cluster != "mainnet":
        link += f"?cluster={cluster}"
    return link


def truncate_signature(signature: Optional[str], start: int = 8, end: int = 8) -> str:
    """Truncate a transaction signature for log lines."""
    if not signature:
        return "none"
    if len(signature) <= start + end:
        return signature
    return f"{signature[:start]}...{signature[-end:]}"
