"""
Ledger client capability used by the submitter, and its Solana adapter.
"""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

import base58
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from utils.formatting import LAMPORTS_PER_SOL, format_sol

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"

SendFn = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class ConsensusReference:
    """Recent blockhash and the last block height it is valid for."""
    blockhash: str
    last_valid_block_height: int


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of waiting for a signature. `err` is the on-chain error payload."""
    err: Any = None

    @property
    def ok(self) -> bool:
        return self.err is None


class LedgerClient(Protocol):
    """What the submitter needs from the ledger."""

    async def get_current_reference(self, commitment: str = CONFIRMED) -> ConsensusReference:
        ...

    async def await_confirmation(
        self,
        signature: str,
        reference: ConsensusReference,
        commitment: str = CONFIRMED,
    ) -> ConfirmationResult:
        ...


def keypair_from_base58(secret: str) -> Keypair:
    """Create keypair from base58 secret key."""
    secret_bytes = base58.b58decode(secret)
    return Keypair.from_bytes(secret_bytes)


def _err_payload(err: Any) -> Any:
    """Convert a solders TransactionError into something JSON-friendly."""
    if err is None or isinstance(err, (str, dict, list)):
        return err
    to_json = getattr(err, "to_json", None)
    if callable(to_json):
        try:
            return json.loads(to_json())
        except (TypeError, ValueError):
            pass
    return str(err)


class SolanaLedgerClient:
    """LedgerClient over solana-py's AsyncClient.

    The client does not own connection lifecycle beyond close(); callers can
    share one instance between concurrent submissions.
    """

    def __init__(self, rpc_url: str, client: Optional[AsyncClient] = None, poll_interval: float = 0.5):
        self.rpc_url = rpc_url
        self.client = client or AsyncClient(rpc_url)
        self.poll_interval = poll_interval

    async def close(self):
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def get_current_reference(self, commitment: str = CONFIRMED) -> ConsensusReference:
        resp = await self.client.get_latest_blockhash(Commitment(commitment))
        return ConsensusReference(
            blockhash=str(resp.value.blockhash),
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def await_confirmation(
        self,
        signature: str,
        reference: ConsensusReference,
        commitment: str = CONFIRMED,
    ) -> ConfirmationResult:
        resp = await self.client.confirm_transaction(
            Signature.from_string(signature),
            Commitment(commitment),
            sleep_seconds=self.poll_interval,
            last_valid_block_height=reference.last_valid_block_height,
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return ConfirmationResult()
        return ConfirmationResult(err=_err_payload(status.err))

    def transfer_sender(
        self,
        from_secret: str,
        to_address: str,
        amount_sol: float,
        opts: Optional[TxOpts] = None,
    ) -> SendFn:
        """Build a send function for a SOL transfer.

        Every call fetches its own blockhash, so a retried send never reuses
        the previous attempt's transaction. That blockhash is fetched just
        after the submitter's reference for the same attempt and can be newer;
        confirmation uses the reference's last_valid_block_height, which is
        then the earlier (stricter) bound, so "block height exceeded" may be
        reported before the sent transaction actually expires. It is
        classified as retryable.
        """
        if amount_sol <= 0:
            raise ValueError(f"Invalid amount: {amount_sol}")

        kp = keypair_from_base58(from_secret)
        to_pubkey = Pubkey.from_string(to_address)
        lamports = math.floor(amount_sol * LAMPORTS_PER_SOL)
        send_opts = opts or TxOpts(skip_preflight=False, preflight_commitment=Confirmed)

        async def send() -> str:
            blockhash_resp = await self.client.get_latest_blockhash(Confirmed)
            transfer_ix = transfer(
                TransferParams(
                    from_pubkey=kp.pubkey(),
                    to_pubkey=to_pubkey,
                    lamports=lamports,
                )
            )
            tx = Transaction.new_signed_with_payer(
                [transfer_ix],
                kp.pubkey(),
                [kp],
                blockhash_resp.value.blockhash,
            )
            resp = await self.client.send_raw_transaction(bytes(tx), send_opts)
            tx_sig = str(resp.value)
            logger.info(f"[TRANSFER] Sent {format_sol(amount_sol)} SOL to {to_address}: {tx_sig}")
            return tx_sig

        return send
