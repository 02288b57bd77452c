"""
Conversation Error Taxonomy

Every failure the conversation engine can surface to a presenter is one of
the errors below. Each carries an ErrorKind tag and an ErrorContext that the
engine uses to decide whether the session stays in place or resets.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Kinds of errors reported to the presenter."""

    VALIDATION = "validation"             # Malformed user input
    NOT_CONNECTED = "not_connected"       # Action needs a linked wallet
    UPSTREAM = "upstream"                 # Market/payload/positions service failure
    CHAIN = "chain"                       # Build/sign/broadcast/finality failure
    SESSION_EXPIRED = "session_expired"   # Session evicted after its TTL
    INVALID_STATE = "invalid_state"       # Event not accepted in the current state
    INTERNAL = "internal"                 # Unexpected failure


@dataclass
class ErrorContext:
    """Additional context about an error."""

    kind: ErrorKind = ErrorKind.INTERNAL
    resets_session: bool = True
    operation: Optional[str] = None
    status_code: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class ConversationError(Exception):
    """Base class for errors raised while handling a conversation event."""

    kind: ErrorKind = ErrorKind.INTERNAL
    resets_session: bool = True

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(
            kind=self.kind,
            resets_session=self.resets_session,
        )


class ValidationError(ConversationError):
    """
    User input failed validation.

    Handled in place: the session keeps its state and the user is
    reprompted. The stale-payload check at confirmation time is the one
    validation failure that resets (see StalePayloadError).
    """

    kind = ErrorKind.VALIDATION
    resets_session = False

    def __init__(self, message: str, field_name: Optional[str] = None, value: Any = None):
        details: Dict[str, Any] = {}
        if field_name:
            details["field"] = field_name
        if value is not None:
            details["value"] = value
        super().__init__(
            message,
            context=ErrorContext(kind=self.kind, resets_session=self.resets_session, details=details),
        )


class StalePayloadError(ValidationError):
    """Pending payload no longer matches the selected market/amount."""

    resets_session = True

    def __init__(self, message: str = "Transaction details changed. Please start again."):
        super().__init__(message)


class NotConnectedError(ConversationError):
    """An action was requested before a wallet was linked."""

    kind = ErrorKind.NOT_CONNECTED

    def __init__(self, action: Optional[str] = None):
        message = (
            f"You need to connect your wallet first to {action} tokens."
            if action
            else "You need to connect your wallet first."
        )
        super().__init__(
            message,
            context=ErrorContext(
                kind=self.kind,
                resets_session=True,
                details={"action": action} if action else {},
            ),
        )


class UpstreamError(ConversationError):
    """The market, payload or positions service failed or timed out."""

    kind = ErrorKind.UPSTREAM

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(
            message,
            context=ErrorContext(
                kind=self.kind,
                resets_session=True,
                operation=operation,
                status_code=status_code,
                details={"retryable": retryable},
            ),
        )
        self.operation = operation
        self.status_code = status_code


class ChainError(ConversationError):
    """Building, signing, broadcasting or awaiting a transaction failed."""

    kind = ErrorKind.CHAIN

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        vm_status: Optional[str] = None,
        broadcast: bool = False,
    ):
        details: Dict[str, Any] = {"broadcast": broadcast}
        if vm_status:
            details["vm_status"] = vm_status
        super().__init__(
            message,
            context=ErrorContext(
                kind=self.kind,
                resets_session=True,
                operation="submit",
                tx_hash=tx_hash,
                details=details,
            ),
        )
        self.tx_hash = tx_hash
        self.vm_status = vm_status


class SessionExpiredError(ConversationError):
    """The session was evicted after its idle TTL elapsed."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, chat_id: Any = None):
        super().__init__(
            "Your session expired. Please start again.",
            context=ErrorContext(
                kind=self.kind,
                resets_session=True,
                details={"chat_id": chat_id} if chat_id is not None else {},
            ),
        )


class InvalidStateError(ConversationError):
    """An event arrived that the current state does not accept."""

    kind = ErrorKind.INVALID_STATE
    resets_session = False

    def __init__(self, event: str, state: str, message: Optional[str] = None):
        super().__init__(
            message or f"'{event}' is not available right now.",
            context=ErrorContext(
                kind=self.kind,
                resets_session=False,
                details={"event": event, "state": state},
            ),
        )
        self.event = event
        self.state = state
