"""
Conversation Module

Per-chat session state, the events a chat front end sends, the outcomes it
renders, and the engine that connects them.
"""

from .models import (
    Action,
    AwaitingAmount,
    AwaitingConfirmation,
    BrowsingMarkets,
    ChatId,
    ConnectingWallet,
    ConversationSession,
    ConversationState,
    Idle,
    Market,
    Phase,
    Position,
    SelectingAction,
    TransactionPayload,
)
from .events import (
    EVENT_TYPES,
    CancelTransaction,
    ConfirmTransaction,
    Event,
    RequestHelp,
    RequestMarkets,
    RequestMenu,
    RequestWalletInfo,
    RequestWalletLink,
    SelectAction,
    SelectMarket,
    SubmitAmount,
    SubmitWalletAddress,
    parse_callback_data,
)
from .outcomes import (
    Error,
    Outcome,
    PromptAction,
    PromptAmount,
    PromptWalletAddress,
    ShowConfirmation,
    ShowHelp,
    ShowMarkets,
    ShowMenu,
    ShowWallet,
    Success,
)
from .store import SessionStore
from .engine import ConversationEngine, parse_amount

__all__ = [
    # Engine
    "ConversationEngine",
    "SessionStore",
    "parse_amount",
    # Models
    "Action",
    "ChatId",
    "ConversationSession",
    "ConversationState",
    "Market",
    "Position",
    "TransactionPayload",
    # Phases
    "Phase",
    "Idle",
    "ConnectingWallet",
    "BrowsingMarkets",
    "SelectingAction",
    "AwaitingAmount",
    "AwaitingConfirmation",
    # Events
    "Event",
    "EVENT_TYPES",
    "RequestMenu",
    "RequestHelp",
    "RequestWalletLink",
    "SubmitWalletAddress",
    "RequestWalletInfo",
    "RequestMarkets",
    "SelectMarket",
    "SelectAction",
    "SubmitAmount",
    "ConfirmTransaction",
    "CancelTransaction",
    "parse_callback_data",
    # Outcomes
    "Outcome",
    "ShowMenu",
    "ShowHelp",
    "PromptWalletAddress",
    "ShowWallet",
    "ShowMarkets",
    "PromptAction",
    "PromptAmount",
    "ShowConfirmation",
    "Success",
    "Error",
]
