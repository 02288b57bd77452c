"""
Conversation Outcomes

Structured results the engine hands to a presenter. Outcomes never carry
formatted chat text beyond a short message; rendering (Markdown, buttons)
belongs to the presenter.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from ..errors import ErrorKind
from .models import Action, Market, Position, TransactionPayload


@dataclass(frozen=True)
class ShowMenu:
    kind: ClassVar[str] = "show_menu"
    wallet_connected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "walletConnected": self.wallet_connected}


@dataclass(frozen=True)
class ShowHelp:
    kind: ClassVar[str] = "show_help"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class PromptWalletAddress:
    kind: ClassVar[str] = "prompt_wallet_address"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class ShowWallet:
    kind: ClassVar[str] = "show_wallet"
    address: str
    positions: Optional[Tuple[Position, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "address": self.address,
            "positions": (
                [p.to_dict() for p in self.positions]
                if self.positions is not None
                else None
            ),
        }


@dataclass(frozen=True)
class ShowMarkets:
    kind: ClassVar[str] = "show_markets"
    markets: Tuple[Market, ...]
    action: Optional[Action] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "markets": [m.to_dict() for m in self.markets],
            "action": self.action.value if self.action else None,
        }


@dataclass(frozen=True)
class PromptAction:
    kind: ClassVar[str] = "prompt_action"
    market: Market
    actions: Tuple[Action, ...] = tuple(Action)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "market": self.market.to_dict(),
            "actions": [a.value for a in self.actions],
        }


@dataclass(frozen=True)
class PromptAmount:
    kind: ClassVar[str] = "prompt_amount"
    action: Action
    market: Market

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "action": self.action.value,
            "market": self.market.to_dict(),
            "apr": self.market.apr_for(self.action),
        }


@dataclass(frozen=True)
class ShowConfirmation:
    kind: ClassVar[str] = "show_confirmation"
    action: Action
    market: Market
    amount: Decimal
    payload: TransactionPayload

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "action": self.action.value,
            "market": self.market.to_dict(),
            "amount": str(self.amount),
            "payload": self.payload.data,
        }


@dataclass(frozen=True)
class Success:
    kind: ClassVar[str] = "success"
    message: str
    tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "txHash": self.tx_hash}


@dataclass(frozen=True)
class Error:
    kind: ClassVar[str] = "error"
    error_kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "errorKind": self.error_kind.value,
            "message": self.message,
            "details": self.details,
        }


Outcome = Union[
    ShowMenu,
    ShowHelp,
    PromptWalletAddress,
    ShowWallet,
    ShowMarkets,
    PromptAction,
    PromptAmount,
    ShowConfirmation,
    Success,
    Error,
]
