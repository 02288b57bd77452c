from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List

from ..core.conversation.models import Action, Market, Position, TransactionPayload


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass

    async def close(self) -> None:
        """Release network resources"""
        return None


class MarketCatalogClient(ABC):
    """Source of the tradable lending markets"""

    @abstractmethod
    async def fetch_markets(self) -> List[Market]:
        """Return every market currently listed. Idempotent, no side effects."""
        pass


class PayloadBuilderClient(ABC):
    """Builds chain payloads for lending actions"""

    @abstractmethod
    async def build_payload(
        self,
        action: Action,
        coin_address: str,
        market_id: str,
        amount: Decimal,
        wallet_address: str,
    ) -> TransactionPayload:
        """Request a payload tagged with the inputs used to build it"""
        pass


class PositionsClient(ABC):
    """Read-only view of a wallet's lending positions"""

    @abstractmethod
    async def get_positions(self, wallet_address: str) -> List[Position]:
        pass


class ChainSubmitter(ABC):
    """Signs and submits payloads with the custodial account"""

    @abstractmethod
    async def submit(self, payload: TransactionPayload) -> str:
        """Submit a payload and wait for it to commit. Returns the tx hash."""
        pass

    async def close(self) -> None:
        """Release network resources"""
        return None
