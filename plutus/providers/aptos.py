"""
Aptos fullnode REST client.

Covers the handful of endpoints the custodial submitter needs: account
sequence numbers, BCS signing-message encoding, submission and transaction
lookup. Signing itself happens locally (see core.execution.signer).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from .base import Provider


class AptosTransactionStatus(str, Enum):
    """Status of a submitted Aptos transaction."""
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass
class AptosTransactionResult:
    """Result of looking up a submitted transaction."""
    tx_hash: str
    status: AptosTransactionStatus
    version: Optional[int] = None
    vm_status: Optional[str] = None
    gas_used: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class AptosNodeError(Exception):
    """Error talking to an Aptos fullnode."""

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class AptosRestClient(Provider):
    """
    Minimal async client for the Aptos fullnode REST API.

    Read calls (account, transaction lookup) are retried with a short
    backoff. Submission is never retried here: a resubmission after an
    ambiguous failure could double-spend from the custodial account.
    """

    name = "aptos"

    def __init__(
        self,
        node_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        max_read_retries: int = 2,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.node_url = (node_url or settings.aptos_node_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.chain_request_timeout_seconds
        self.max_read_retries = max(1, max_read_retries)
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self.node_url}{path}"

    @staticmethod
    def _raise_for_node_error(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("message") if isinstance(body, dict) else None
        error_code = body.get("error_code") if isinstance(body, dict) else None
        raise AptosNodeError(
            f"Aptos node error {response.status_code}: {message or response.text[:200]}",
            status_code=response.status_code,
            error_code=error_code,
        )

    async def _get(self, path: str) -> httpx.Response:
        client = await self._get_client()

        for attempt in range(self.max_read_retries):
            try:
                response = await client.get(self._url(path), timeout=self.timeout_s)
                if response.status_code >= 500 and attempt < self.max_read_retries - 1:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                return response
            except httpx.TransportError as e:
                if attempt == self.max_read_retries - 1:
                    raise AptosNodeError(f"Network error: {e}") from e
                await asyncio.sleep(0.5 * (attempt + 1))

        raise AptosNodeError("Max retries exceeded")

    async def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.post(
                self._url(path),
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
        except httpx.TransportError as e:
            raise AptosNodeError(f"Network error: {e}") from e

    async def ready(self) -> bool:
        return bool(self.node_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "No node URL configured"}

        try:
            response = await self._get("/")
            self._raise_for_node_error(response)
            info = response.json()
            return {
                "status": "healthy",
                "chain_id": info.get("chain_id"),
                "ledger_version": info.get("ledger_version"),
            }
        except AptosNodeError as e:
            return {"status": "error", "reason": str(e)}

    async def get_sequence_number(self, address: str) -> int:
        """Committed sequence number of an account (GET /accounts/{address})."""

        response = await self._get(f"/accounts/{address}")
        self._raise_for_node_error(response)
        data = response.json()
        try:
            return int(data["sequence_number"])
        except (KeyError, TypeError, ValueError) as e:
            raise AptosNodeError(f"Malformed account resource for {address}") from e

    async def encode_submission(self, request: Dict[str, Any]) -> bytes:
        """
        Ask the node for the BCS signing message of an unsigned transaction.

        Returns:
            The raw bytes to sign.
        """
        response = await self._post("/transactions/encode_submission", request)
        self._raise_for_node_error(response)
        encoded = response.json()
        if not isinstance(encoded, str) or not encoded.startswith("0x"):
            raise AptosNodeError("encode_submission returned an unexpected value")
        return bytes.fromhex(encoded[2:])

    async def submit_transaction(self, signed_request: Dict[str, Any]) -> str:
        """
        Broadcast a signed transaction.

        Returns:
            The transaction hash of the pending transaction.
        """
        response = await self._post("/transactions", signed_request)
        self._raise_for_node_error(response)
        tx_hash = response.json().get("hash")
        if not tx_hash:
            raise AptosNodeError("No hash returned from transaction submission")
        return tx_hash

    async def get_transaction(self, tx_hash: str) -> AptosTransactionResult:
        """Current status of a transaction by hash."""

        response = await self._get(f"/transactions/by_hash/{tx_hash}")
        if response.status_code == 404:
            # Not yet visible to this node
            return AptosTransactionResult(tx_hash=tx_hash, status=AptosTransactionStatus.PENDING)
        self._raise_for_node_error(response)

        data = response.json()
        if data.get("type") == "pending_transaction":
            return AptosTransactionResult(tx_hash=tx_hash, status=AptosTransactionStatus.PENDING, raw=data)

        success = bool(data.get("success"))
        return AptosTransactionResult(
            tx_hash=tx_hash,
            status=AptosTransactionStatus.COMMITTED if success else AptosTransactionStatus.FAILED,
            version=int(data["version"]) if data.get("version") is not None else None,
            vm_status=data.get("vm_status"),
            gas_used=int(data["gas_used"]) if data.get("gas_used") is not None else None,
            raw=data,
        )

    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout_s: float = 60.0,
        poll_interval_s: float = 1.0,
    ) -> AptosTransactionResult:
        """
        Wait for a transaction to leave the pending state.

        Uses exponential backoff for polling.

        Args:
            tx_hash: Transaction hash returned by submit_transaction
            timeout_s: Maximum time to wait
            poll_interval_s: Initial polling interval

        Returns:
            AptosTransactionResult with final status (EXPIRED on timeout)
        """
        start_time = time.monotonic()
        interval = poll_interval_s

        while (time.monotonic() - start_time) < timeout_s:
            result = await self.get_transaction(tx_hash)

            if result.status in (
                AptosTransactionStatus.COMMITTED,
                AptosTransactionStatus.FAILED,
            ):
                return result

            await asyncio.sleep(interval)
            # Exponential backoff, max 5 seconds
            interval = min(interval * 1.5, 5.0)

        return AptosTransactionResult(
            tx_hash=tx_hash,
            status=AptosTransactionStatus.EXPIRED,
            vm_status="Transaction confirmation timed out",
        )
