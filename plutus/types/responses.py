from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EventResponse(BaseModel):
    chat_id: str = Field(description="Chat the event was applied to")
    state: str = Field(description="Conversation state after the event")
    outcome: Dict[str, Any] = Field(description="Structured outcome for the presenter to render")


class SessionSnapshot(BaseModel):
    chat_id: str = Field(description="Chat identifier")
    state: str = Field(description="Current conversation state")
    wallet_address: Optional[str] = Field(default=None, description="Linked wallet, if any")
    action: Optional[str] = Field(default=None, description="Action chosen in the current flow")
    available_markets: List[Dict[str, Any]] = Field(default_factory=list, description="Last market list shown")
    selected_market: Optional[Dict[str, Any]] = Field(default=None, description="Market chosen in the current flow")
    pending_amount: Optional[str] = Field(default=None, description="Amount awaiting confirmation")
    pending_payload: Optional[Dict[str, Any]] = Field(default=None, description="Payload awaiting confirmation")
    created_at: Optional[str] = Field(default=None, description="Session creation time (ISO 8601)")
    last_active_at: Optional[str] = Field(default=None, description="Last event time (ISO 8601)")
