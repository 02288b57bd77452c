"""User events the conversation engine consumes."""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from .models import Action


@dataclass(frozen=True)
class RequestMenu:
    name: ClassVar[str] = "request_menu"


@dataclass(frozen=True)
class RequestHelp:
    name: ClassVar[str] = "request_help"


@dataclass(frozen=True)
class RequestWalletLink:
    name: ClassVar[str] = "request_wallet_link"


@dataclass(frozen=True)
class SubmitWalletAddress:
    name: ClassVar[str] = "submit_wallet_address"
    text: str


@dataclass(frozen=True)
class RequestWalletInfo:
    name: ClassVar[str] = "request_wallet_info"


@dataclass(frozen=True)
class RequestMarkets:
    name: ClassVar[str] = "request_markets"
    action: Optional[Action] = None


@dataclass(frozen=True)
class SelectMarket:
    name: ClassVar[str] = "select_market"
    market_index: int
    action: Optional[Action] = None


@dataclass(frozen=True)
class SelectAction:
    name: ClassVar[str] = "select_action"
    action: Action


@dataclass(frozen=True)
class SubmitAmount:
    name: ClassVar[str] = "submit_amount"
    text: str


@dataclass(frozen=True)
class ConfirmTransaction:
    name: ClassVar[str] = "confirm_transaction"


@dataclass(frozen=True)
class CancelTransaction:
    name: ClassVar[str] = "cancel_transaction"


Event = Union[
    RequestMenu,
    RequestHelp,
    RequestWalletLink,
    SubmitWalletAddress,
    RequestWalletInfo,
    RequestMarkets,
    SelectMarket,
    SelectAction,
    SubmitAmount,
    ConfirmTransaction,
    CancelTransaction,
]

EVENT_TYPES = {
    cls.name: cls
    for cls in (
        RequestMenu,
        RequestHelp,
        RequestWalletLink,
        SubmitWalletAddress,
        RequestWalletInfo,
        RequestMarkets,
        SelectMarket,
        SelectAction,
        SubmitAmount,
        ConfirmTransaction,
        CancelTransaction,
    )
}


def parse_callback_data(data: str) -> Event:
    """
    Translate inline-button callback data into an event.

    Understands the menu vocabulary of the chat front end: ``menu``,
    ``help``, ``connect_wallet``, ``wallet``, ``markets``, an action name
    (``supply`` etc.), ``confirm``, ``cancel`` and the per-market codes
    ``s_0``/``w_1``/``b_2``/``r_3``.
    """
    data = (data or "").strip()
    simple = {
        "menu": RequestMenu(),
        "help": RequestHelp(),
        "connect_wallet": RequestWalletLink(),
        "wallet": RequestWalletInfo(),
        "markets": RequestMarkets(),
        "confirm": ConfirmTransaction(),
        "cancel": CancelTransaction(),
    }
    if data in simple:
        return simple[data]
    try:
        return RequestMarkets(action=Action(data))
    except ValueError:
        pass

    code, sep, index = data.partition("_")
    if sep and len(code) == 1 and index.isdigit():
        return SelectMarket(market_index=int(index), action=Action.from_code(code))

    raise ValueError(f"Unknown callback data: {data!r}")
