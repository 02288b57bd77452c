"""
Custodial transaction submission.

All users' transactions are signed by one backend account, which has a
single sequence-number stream. Build, sign and broadcast therefore run one
at a time behind a process-wide lock; waiting for finality happens after
the lock is released so a slow commit does not hold up other users.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Tuple

from ...config import settings
from ...providers.aptos import AptosNodeError, AptosRestClient, AptosTransactionStatus
from ...providers.base import ChainSubmitter
from ..conversation.models import TransactionPayload
from ..errors import ChainError
from .sequence_manager import SequenceNumberManager
from .signer import CustodialSigner


logger = logging.getLogger(__name__)


def to_entry_function_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a builder payload into an Aptos ``entry_function_payload``.

    The payload service returns ``function``/``typeArguments``/
    ``functionArguments``; snake_case keys are accepted as well.

    Raises:
        ChainError: If the payload does not name a Move entry function.
    """
    function = data.get("function")
    if not isinstance(function, str) or function.count("::") != 2:
        raise ChainError(f"Malformed payload: invalid entry function {function!r}")

    type_arguments = data.get("typeArguments", data.get("type_arguments", []))
    arguments = data.get("functionArguments", data.get("arguments", []))
    if not isinstance(type_arguments, list) or not isinstance(arguments, list):
        raise ChainError("Malformed payload: arguments must be lists")

    return {
        "type": "entry_function_payload",
        "function": function,
        "type_arguments": [str(t) for t in type_arguments],
        "arguments": arguments,
    }


class CustodialSubmitter(ChainSubmitter):
    """
    Submits payloads with the custodial account.

    Flow per submission:
    1. (locked) reserve a sequence number, build the unsigned request,
       fetch its signing message, sign, broadcast
    2. (unlocked) poll for the committed transaction
    """

    def __init__(
        self,
        client: AptosRestClient,
        signer: CustodialSigner,
        sequence_manager: Optional[SequenceNumberManager] = None,
        max_gas_amount: Optional[int] = None,
        gas_unit_price: Optional[int] = None,
        expiration_s: Optional[int] = None,
        finality_timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ):
        self._client = client
        self._signer = signer
        self._sequences = sequence_manager or SequenceNumberManager(client)
        self.max_gas_amount = max_gas_amount or settings.max_gas_amount
        self.gas_unit_price = gas_unit_price or settings.gas_unit_price
        self.expiration_s = expiration_s or settings.transaction_expiration_seconds
        self.finality_timeout_s = finality_timeout_s or settings.finality_timeout_seconds
        self.poll_interval_s = poll_interval_s or settings.finality_poll_interval_seconds

        # One lock for the whole process: the signer is shared by every chat
        self._broadcast_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self._signer.address

    @property
    def busy(self) -> bool:
        return self._broadcast_lock.locked()

    def _build_request(self, entry: Dict[str, Any], sequence: int, expires_at: int) -> Dict[str, Any]:
        return {
            "sender": self._signer.address,
            "sequence_number": str(sequence),
            "max_gas_amount": str(self.max_gas_amount),
            "gas_unit_price": str(self.gas_unit_price),
            "expiration_timestamp_secs": str(expires_at),
            "payload": entry,
        }

    async def _broadcast(self, entry: Dict[str, Any]) -> Tuple[str, int]:
        """Build, sign and broadcast. Caller must hold the broadcast lock."""
        address = self._signer.address
        expires_at = int(time.time()) + self.expiration_s

        try:
            sequence = await self._sequences.reserve(address, expires_at=expires_at)
        except AptosNodeError as e:
            raise ChainError(f"Could not read custodial account state: {e}") from e

        broadcast = False
        try:
            request = self._build_request(entry, sequence, expires_at)
            message = await self._client.encode_submission(request)
            signed = {**request, "signature": self._signer.signature_payload(message)}
            tx_hash = await self._client.submit_transaction(signed)
            broadcast = True
        except Exception as e:
            logger.warning(f"Broadcast failed at sequence {sequence}: {e}")
            raise ChainError(f"Failed to broadcast transaction: {e}") from e
        finally:
            # Runs on cancellation too: an unsent number must be returned
            if not broadcast:
                await self._sequences.release(address, sequence)

        logger.info(f"Broadcast {tx_hash} from {address} at sequence {sequence}")
        return tx_hash, sequence

    async def submit(self, payload: TransactionPayload) -> str:
        """
        Submit a payload and wait for it to commit.

        Once broadcast, the sequence number is never handed back: it stays
        in flight until the node moves past it or the transaction expires.

        Returns:
            The committed transaction hash

        Raises:
            ChainError: On any build/sign/broadcast failure, an on-chain
                failure, or when finality is not observed in time.
        """
        entry = to_entry_function_payload(payload.data)

        async with self._broadcast_lock:
            tx_hash, sequence = await self._broadcast(entry)

        address = self._signer.address
        try:
            result = await self._client.wait_for_transaction(
                tx_hash,
                timeout_s=self.finality_timeout_s,
                poll_interval_s=self.poll_interval_s,
            )
        except AptosNodeError as e:
            logger.warning(f"Lost track of {tx_hash} at sequence {sequence}: {e}")
            raise ChainError(
                f"Lost track of transaction {tx_hash}: {e}",
                tx_hash=tx_hash,
                broadcast=True,
            ) from e

        if result.status == AptosTransactionStatus.COMMITTED:
            await self._sequences.confirm(address, sequence)
            logger.info(f"Transaction {tx_hash} committed at version {result.version}")
            return tx_hash

        if result.status == AptosTransactionStatus.FAILED:
            # Executed but aborted: the sequence number is still consumed
            await self._sequences.confirm(address, sequence)
            raise ChainError(
                f"Transaction failed on chain: {result.vm_status}",
                tx_hash=tx_hash,
                vm_status=result.vm_status,
                broadcast=True,
            )

        logger.warning(f"Transaction {tx_hash} unconfirmed after {self.finality_timeout_s}s")
        raise ChainError(
            f"Transaction {tx_hash} was not confirmed within {self.finality_timeout_s}s",
            tx_hash=tx_hash,
            broadcast=True,
        )

    async def close(self) -> None:
        await self._client.close()


class UnconfiguredSubmitter(ChainSubmitter):
    """Stand-in used when no custodial key is configured."""

    async def submit(self, payload: TransactionPayload) -> str:
        raise ChainError("Custodial signer not configured")

    async def close(self) -> None:
        return None
