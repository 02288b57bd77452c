"""Async client for the Plutus lending API (markets, payloads, positions)."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.conversation.models import Action, Market, Position, TransactionPayload
from ..core.errors import UpstreamError
from .base import MarketCatalogClient, PayloadBuilderClient, PositionsClient, Provider


logger = logging.getLogger(__name__)


class PlutusAPIProvider(Provider, MarketCatalogClient, PayloadBuilderClient, PositionsClient):
    """Thin wrapper around the Plutus REST endpoints.

    Every call carries a bounded timeout. Transport failures, timeouts and
    5xx responses are retried once; 4xx responses are application errors
    and are never retried. All failures surface as ``UpstreamError`` tagged
    with the operation that failed.
    """

    name = "plutus"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        max_attempts: int = 2,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.plutus_api_url).rstrip("/")
        self.timeout_s = timeout_s if timeout_s is not None else settings.request_timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "PlutusMoveBot/1.0",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_s)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        client = await self._get_client()
        last_error = UpstreamError(f"{operation} was not attempted", operation=operation)

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    headers=self._headers(),
                    timeout=self.timeout_s,
                )
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status < 500:
                    raise UpstreamError(
                        f"{operation} rejected: {status} {exc.response.reason_phrase}",
                        operation=operation,
                        status_code=status,
                    ) from exc
                last_error = UpstreamError(
                    f"{operation} failed: {status} {exc.response.reason_phrase}",
                    operation=operation,
                    status_code=status,
                    retryable=True,
                )
            except httpx.TimeoutException as exc:
                last_error = UpstreamError(
                    f"{operation} timed out after {self.timeout_s}s",
                    operation=operation,
                    retryable=True,
                )
                last_error.__cause__ = exc
            except httpx.TransportError as exc:
                last_error = UpstreamError(
                    f"{operation} network error: {exc}",
                    operation=operation,
                    retryable=True,
                )
                last_error.__cause__ = exc
            except httpx.HTTPError as exc:
                # Decoding errors, redirect loops
                raise UpstreamError(
                    f"{operation} failed: {exc}",
                    operation=operation,
                ) from exc
            except ValueError as exc:
                # Body was not JSON
                raise UpstreamError(
                    f"{operation} returned an unreadable response",
                    operation=operation,
                ) from exc

            logger.warning(
                f"Plutus API {operation} attempt {attempt}/{self.max_attempts} failed: {last_error.message}"
            )

        raise last_error

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "No API URL configured"}

        try:
            markets = await self.fetch_markets()
            return {"status": "healthy", "markets": len(markets)}
        except UpstreamError as e:
            return {"status": "error", "reason": e.message}

    async def fetch_markets(self) -> List[Market]:
        """GET /api/markets"""

        data = await self._request("fetch_markets", "GET", "/api/markets")
        if isinstance(data, dict):
            data = data.get("markets", [])
        if not isinstance(data, list):
            raise UpstreamError("fetch_markets returned an unexpected shape", operation="fetch_markets")

        try:
            return [Market.from_api(item, index) for index, item in enumerate(data)]
        except (TypeError, ValueError, AttributeError) as exc:
            raise UpstreamError(
                f"fetch_markets returned an invalid market: {exc}",
                operation="fetch_markets",
            ) from exc

    async def build_payload(
        self,
        action: Action,
        coin_address: str,
        market_id: str,
        amount: Decimal,
        wallet_address: str,
    ) -> TransactionPayload:
        """POST /api/transaction/payload"""

        body = {
            "type": action.value,
            "coinAddress": coin_address,
            "market": market_id,
            "amount": float(amount),
            "walletAddress": wallet_address,
        }
        data = await self._request("build_payload", "POST", "/api/transaction/payload", json=body)

        payload = data.get("payload") if isinstance(data, dict) else None
        if not isinstance(payload, dict) or not payload:
            raise UpstreamError(
                f"build_payload returned no payload for {action.value}",
                operation="build_payload",
            )

        return TransactionPayload(
            data=payload,
            action=action,
            market_id=market_id,
            coin_address=coin_address,
            amount=amount,
            wallet_address=wallet_address,
        )

    async def get_positions(self, wallet_address: str) -> List[Position]:
        """GET /api/user/{wallet}/positions"""

        data = await self._request(
            "get_positions", "GET", f"/api/user/{wallet_address}/positions"
        )
        if isinstance(data, dict):
            data = data.get("positions", [])
        if not isinstance(data, list):
            raise UpstreamError("get_positions returned an unexpected shape", operation="get_positions")
        return [Position.from_api(item) for item in data if isinstance(item, dict)]
