"""
In-memory session store.

One ConversationSession per chat id, each guarded by its own asyncio.Lock so
that events from the same chat are processed one at a time (in arrival
order) while different chats never wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from ..errors import SessionExpiredError
from .models import ChatId, ConversationSession


logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds conversation sessions for the lifetime of the process.

    Sessions are created lazily on first access. Nothing is persisted: a
    restart drops every session, including wallet links.
    """

    def __init__(self, ttl_seconds: float = 0):
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[ChatId, ConversationSession] = {}
        self._locks: Dict[ChatId, asyncio.Lock] = {}
        self._users: Dict[ChatId, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._sessions

    def _get_lock(self, chat_id: ChatId) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[chat_id] = lock
        return lock

    def get(self, chat_id: ChatId) -> ConversationSession:
        """
        Return the session for a chat, creating an Idle one if absent.

        Raises:
            SessionExpiredError: The stored session outlived its TTL. It has
                already been replaced with a fresh Idle session, so the next
                call succeeds.
        """
        session = self._sessions.get(chat_id)
        if session is None:
            session = ConversationSession(chat_id=chat_id)
            self._sessions[chat_id] = session
            return session

        if session.is_expired(self.ttl_seconds):
            logger.info(f"Session {chat_id} expired after {self.ttl_seconds}s idle")
            self._sessions[chat_id] = ConversationSession(chat_id=chat_id)
            raise SessionExpiredError(chat_id)

        return session

    def peek(self, chat_id: ChatId) -> Optional[ConversationSession]:
        """Return the session if it exists, without creating or expiring it."""
        return self._sessions.get(chat_id)

    def set(self, chat_id: ChatId, session: ConversationSession) -> None:
        if session.chat_id != chat_id:
            raise ValueError(
                f"Session belongs to chat {session.chat_id}, not {chat_id}"
            )
        self._sessions[chat_id] = session

    def reset(self, chat_id: ChatId) -> ConversationSession:
        """Return a chat to Idle, keeping its wallet link and market cache."""
        session = self._sessions.get(chat_id)
        if session is None:
            session = ConversationSession(chat_id=chat_id)
            self._sessions[chat_id] = session
        else:
            session.reset()
        return session

    def in_use(self, chat_id: ChatId) -> bool:
        """True while anything holds or waits for the chat's lock."""
        return self._users.get(chat_id, 0) > 0

    @asynccontextmanager
    async def locked(self, chat_id: ChatId) -> AsyncIterator[None]:
        """Hold the chat's lock. Holders and waiters are counted for eviction."""
        lock = self._get_lock(chat_id)
        self._users[chat_id] = self._users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if not self._users[chat_id]:
                del self._users[chat_id]

    @asynccontextmanager
    async def exclusive(self, chat_id: ChatId) -> AsyncIterator[ConversationSession]:
        """
        Hold the chat's lock for the duration of the block.

        Yields the chat's session. Lookup happens after the lock is taken so
        the block sees whatever the previous holder wrote.
        """
        async with self.locked(chat_id):
            yield self.get(chat_id)

    def evict_expired(self, now: Optional[datetime] = None) -> List[ChatId]:
        """Drop sessions idle past the TTL, with their locks, unless in use."""
        if self.ttl_seconds <= 0:
            return []

        now = now or datetime.now(timezone.utc)
        evicted: List[ChatId] = []
        for chat_id, session in list(self._sessions.items()):
            if self.in_use(chat_id):
                continue
            if session.is_expired(self.ttl_seconds, now=now):
                del self._sessions[chat_id]
                self._locks.pop(chat_id, None)
                evicted.append(chat_id)

        if evicted:
            logger.info(f"Evicted {len(evicted)} expired sessions")
        return evicted
