from .requests import EventRequest, EventType
from .responses import EventResponse, SessionSnapshot

__all__ = [
    "EventRequest",
    "EventType",
    "EventResponse",
    "SessionSnapshot",
]
