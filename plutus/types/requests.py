from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from ..core.conversation import (
    EVENT_TYPES,
    Action,
    Event,
    RequestMarkets,
    SelectAction,
    SelectMarket,
    SubmitAmount,
    SubmitWalletAddress,
)


EventType = Literal[
    "request_menu",
    "request_help",
    "request_wallet_link",
    "submit_wallet_address",
    "request_wallet_info",
    "request_markets",
    "select_market",
    "select_action",
    "submit_amount",
    "confirm_transaction",
    "cancel_transaction",
]


class EventRequest(BaseModel):
    type: EventType = Field(description="Event name, e.g. request_markets or submit_amount")
    text: Optional[str] = Field(default=None, description="Free text for wallet address or amount events")
    action: Optional[Action] = Field(default=None, description="Lending action (supply, withdraw, borrow, repay)")
    market_index: Optional[int] = Field(default=None, description="Index into the last market list shown")

    @model_validator(mode="after")
    def _check_required_fields(self) -> "EventRequest":
        if self.type in ("submit_wallet_address", "submit_amount") and self.text is None:
            raise ValueError(f"'{self.type}' requires text")
        if self.type == "select_market" and self.market_index is None:
            raise ValueError("'select_market' requires market_index")
        if self.type == "select_action" and self.action is None:
            raise ValueError("'select_action' requires action")
        return self

    def to_event(self) -> Event:
        if self.type == "submit_wallet_address":
            return SubmitWalletAddress(text=self.text)
        if self.type == "submit_amount":
            return SubmitAmount(text=self.text)
        if self.type == "request_markets":
            return RequestMarkets(action=self.action)
        if self.type == "select_market":
            return SelectMarket(market_index=self.market_index, action=self.action)
        if self.type == "select_action":
            return SelectAction(action=self.action)
        return EVENT_TYPES[self.type]()
