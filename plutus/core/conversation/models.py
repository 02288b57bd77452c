"""
Conversation Models

Defines the per-chat session, its states, and the market/payload snapshots
that flow through a lending conversation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union


ChatId = Union[int, str]


class ConversationState(str, Enum):
    """States a conversation can be in."""

    IDLE = "idle"                                    # Main menu, nothing pending
    CONNECTING_WALLET = "connecting_wallet"          # Waiting for a wallet address
    BROWSING_MARKETS = "browsing_markets"            # Market list shown
    SELECTING_ACTION = "selecting_action"            # Market picked, action not yet
    AWAITING_AMOUNT = "awaiting_amount"              # Waiting for the amount text
    AWAITING_CONFIRMATION = "awaiting_confirmation"  # Payload shown, waiting for confirm


class Action(str, Enum):
    """Lending actions a user can take on a market."""

    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"

    @property
    def apr_kind(self) -> str:
        """Which APR applies to this action."""
        return "supply" if self in (Action.SUPPLY, Action.WITHDRAW) else "borrow"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_code(cls, code: str) -> "Action":
        """Map the one-letter menu codes (s_/w_/b_/r_ callbacks) to an action."""
        try:
            return _ACTION_CODES[code.lower()]
        except KeyError:
            raise ValueError(f"Unknown action code: {code!r}") from None


_ACTION_CODES = {
    "s": Action.SUPPLY,
    "w": Action.WITHDRAW,
    "b": Action.BORROW,
    "r": Action.REPAY,
}


@dataclass(frozen=True)
class Market:
    """A lending market as returned by the catalog. Never patched in place."""

    id: str
    coin_address: str
    supply_apr: float
    borrow_apr: float
    price: float
    name: Optional[str] = None
    symbol: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("market id is required")
        if not self.coin_address:
            raise ValueError(f"market {self.id} has no coin address")
        if self.price < 0:
            raise ValueError(f"market {self.id} has negative price {self.price}")

    @classmethod
    def from_api(cls, data: Dict[str, Any], index: int = 0) -> "Market":
        """Parse the catalog wire shape, filling in a display name if absent."""
        return cls(
            id=str(data.get("id") or ""),
            coin_address=str(data.get("coinAddress") or ""),
            supply_apr=float(data.get("supplyApr") or 0),
            borrow_apr=float(data.get("borrowApr") or 0),
            price=float(data.get("price") or 0),
            name=data.get("name") or f"Market {index + 1}",
            symbol=data.get("symbol") or "",
        )

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def apr_for(self, action: Action) -> float:
        return self.supply_apr if action.apr_kind == "supply" else self.borrow_apr

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "coinAddress": self.coin_address,
            "supplyApr": self.supply_apr,
            "borrowApr": self.borrow_apr,
            "price": self.price,
            "name": self.name,
            "symbol": self.symbol,
        }


@dataclass(frozen=True)
class Position:
    """A wallet's position in one market."""

    market_id: str
    supplied: str = "0"
    borrowed: str = "0"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            market_id=str(data.get("marketId") or data.get("market") or ""),
            supplied=str(data.get("supplied", "0")),
            borrowed=str(data.get("borrowed", "0")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketId": self.market_id,
            "supplied": self.supplied,
            "borrowed": self.borrowed,
        }


@dataclass(frozen=True)
class TransactionPayload:
    """
    Opaque chain payload plus the inputs it was built from.

    The origin tags let the engine check, right before submission, that
    the payload still corresponds to the user's current selection.
    """

    data: Dict[str, Any]
    action: Action
    market_id: str
    coin_address: str
    amount: Decimal
    wallet_address: str

    def matches(
        self,
        action: Action,
        market: Market,
        amount: Decimal,
        wallet_address: Optional[str],
    ) -> bool:
        return (
            self.action == action
            and self.market_id == market.id
            and self.coin_address == market.coin_address
            and self.amount == amount
            and self.wallet_address == wallet_address
        )

    @property
    def function(self) -> Optional[str]:
        return self.data.get("function")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "action": self.action.value,
            "marketId": self.market_id,
            "coinAddress": self.coin_address,
            "amount": str(self.amount),
            "walletAddress": self.wallet_address,
        }


# =============================================================================
# Phases: one frozen dataclass per state, holding only that state's fields
# =============================================================================

@dataclass(frozen=True)
class Idle:
    state: ClassVar[ConversationState] = ConversationState.IDLE


@dataclass(frozen=True)
class ConnectingWallet:
    state: ClassVar[ConversationState] = ConversationState.CONNECTING_WALLET


@dataclass(frozen=True)
class BrowsingMarkets:
    state: ClassVar[ConversationState] = ConversationState.BROWSING_MARKETS
    action: Optional[Action] = None


@dataclass(frozen=True)
class SelectingAction:
    state: ClassVar[ConversationState] = ConversationState.SELECTING_ACTION
    market: Market


@dataclass(frozen=True)
class AwaitingAmount:
    state: ClassVar[ConversationState] = ConversationState.AWAITING_AMOUNT
    action: Action
    market: Market


@dataclass(frozen=True)
class AwaitingConfirmation:
    state: ClassVar[ConversationState] = ConversationState.AWAITING_CONFIRMATION
    action: Action
    market: Market
    amount: Decimal
    payload: TransactionPayload


Phase = Union[
    Idle,
    ConnectingWallet,
    BrowsingMarkets,
    SelectingAction,
    AwaitingAmount,
    AwaitingConfirmation,
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversationSession:
    """Everything the bot remembers about one chat."""

    chat_id: ChatId
    phase: Phase = field(default_factory=Idle)
    wallet_address: Optional[str] = None
    available_markets: Tuple[Market, ...] = ()

    created_at: datetime = field(default_factory=_utcnow)
    last_active_at: datetime = field(default_factory=_utcnow)

    @property
    def state(self) -> ConversationState:
        return self.phase.state

    @property
    def action(self) -> Optional[Action]:
        return getattr(self.phase, "action", None)

    @property
    def selected_market(self) -> Optional[Market]:
        return getattr(self.phase, "market", None)

    @property
    def pending_amount(self) -> Optional[Decimal]:
        return getattr(self.phase, "amount", None)

    @property
    def pending_payload(self) -> Optional[TransactionPayload]:
        return getattr(self.phase, "payload", None)

    @property
    def wallet_connected(self) -> bool:
        return bool(self.wallet_address)

    def touch(self) -> None:
        self.last_active_at = _utcnow()

    def is_expired(self, ttl_seconds: float, now: Optional[datetime] = None) -> bool:
        if ttl_seconds <= 0:
            return False
        now = now or _utcnow()
        return (now - self.last_active_at).total_seconds() > ttl_seconds

    def reset(self) -> None:
        """Back to Idle, keeping the wallet link and the cached catalog."""
        self.phase = Idle()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chatId": str(self.chat_id),
            "state": self.state.value,
            "action": self.action.value if self.action else None,
            "walletAddress": self.wallet_address,
            "availableMarkets": [m.to_dict() for m in self.available_markets],
            "selectedMarket": self.selected_market.to_dict() if self.selected_market else None,
            "pendingAmount": str(self.pending_amount) if self.pending_amount is not None else None,
            "pendingPayload": self.pending_payload.to_dict() if self.pending_payload else None,
            "createdAt": self.created_at.isoformat(),
            "lastActiveAt": self.last_active_at.isoformat(),
        }
