from fastapi import APIRouter, Depends

from ..core.bot import get_engine
from ..core.conversation import ConversationEngine, ConversationSession
from ..types import EventRequest, EventResponse, SessionSnapshot


router = APIRouter()


def _snapshot(session: ConversationSession) -> SessionSnapshot:
    data = session.to_dict()
    return SessionSnapshot(
        chat_id=data["chatId"],
        state=data["state"],
        wallet_address=data["walletAddress"],
        action=data["action"],
        available_markets=data["availableMarkets"],
        selected_market=data["selectedMarket"],
        pending_amount=data["pendingAmount"],
        pending_payload=data["pendingPayload"],
        created_at=data["createdAt"],
        last_active_at=data["lastActiveAt"],
    )


@router.post("/sessions/{chat_id}/events", response_model=EventResponse)
async def post_event(
    chat_id: str,
    req: EventRequest,
    engine: ConversationEngine = Depends(get_engine),
):
    """Apply one user event to a chat and return the outcome to render.

    Conversation failures come back as an ``error`` outcome with status 200;
    only malformed requests are rejected with 422.
    """
    outcome = await engine.handle(chat_id, req.to_event())
    session = engine.store.peek(chat_id)
    state = session.state.value if session else "idle"
    return EventResponse(chat_id=chat_id, state=state, outcome=outcome.to_dict())


@router.get("/sessions/{chat_id}", response_model=SessionSnapshot)
async def get_session(chat_id: str, engine: ConversationEngine = Depends(get_engine)):
    session = engine.store.peek(chat_id)
    if session is None:
        # Not stored: a chat with no events yet is simply idle
        session = ConversationSession(chat_id=chat_id)
    return _snapshot(session)


@router.delete("/sessions/{chat_id}", response_model=SessionSnapshot)
async def reset_session(chat_id: str, engine: ConversationEngine = Depends(get_engine)):
    """Return a chat to idle. The linked wallet and market list are kept."""
    async with engine.store.locked(chat_id):
        session = engine.store.reset(chat_id)
    return _snapshot(session)
