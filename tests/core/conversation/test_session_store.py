"""
Tests for the in-memory session store.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from plutus.core.conversation import (
    BrowsingMarkets,
    ConversationSession,
    ConversationState,
    Market,
    SessionStore,
)
from plutus.core.errors import SessionExpiredError


MARKET = Market(id="m1", coin_address="0x1::aptos_coin::AptosCoin", supply_apr=1.0, borrow_apr=2.0, price=8.0)


class TestSessionStore:

    def test_sessions_are_created_lazily(self):
        store = SessionStore()
        assert 5 not in store
        assert store.peek(5) is None

        session = store.get(5)

        assert 5 in store
        assert len(store) == 1
        assert store.get(5) is session

    def test_sessions_are_isolated_per_chat(self):
        store = SessionStore()
        first = store.get(1)
        first.wallet_address = "0xabc123def456"
        first.phase = BrowsingMarkets()

        second = store.get(2)

        assert second.wallet_address is None
        assert second.state == ConversationState.IDLE

    def test_set_rejects_foreign_session(self):
        store = SessionStore()
        with pytest.raises(ValueError):
            store.set(1, ConversationSession(chat_id=2))

    def test_reset_keeps_wallet_and_markets(self):
        store = SessionStore()
        session = store.get(1)
        session.wallet_address = "0xabc123def456"
        session.available_markets = (MARKET,)
        session.phase = BrowsingMarkets()

        reset = store.reset(1)

        assert reset.state == ConversationState.IDLE
        assert reset.wallet_address == "0xabc123def456"
        assert reset.available_markets == (MARKET,)

    def test_reset_of_unknown_chat_creates_idle_session(self):
        store = SessionStore()
        assert store.reset("new").state == ConversationState.IDLE

    def test_expired_session_is_replaced(self):
        store = SessionStore(ttl_seconds=60)
        session = store.get(1)
        session.wallet_address = "0xabc123def456"
        session.last_active_at = datetime.now(timezone.utc) - timedelta(seconds=120)

        with pytest.raises(SessionExpiredError):
            store.get(1)

        fresh = store.get(1)
        assert fresh is not session
        assert fresh.wallet_address is None

    def test_ttl_zero_never_expires(self):
        store = SessionStore(ttl_seconds=0)
        session = store.get(1)
        session.last_active_at = datetime.now(timezone.utc) - timedelta(days=365)

        assert store.get(1) is session
        assert store.evict_expired() == []

    @pytest.mark.asyncio
    async def test_evict_skips_locked_sessions(self):
        store = SessionStore(ttl_seconds=60)
        stale = datetime.now(timezone.utc) - timedelta(seconds=120)
        store.get(1).last_active_at = stale
        store.get(2).last_active_at = stale

        async with store.locked(2):
            evicted = store.evict_expired()

        assert evicted == [1]
        assert 1 not in store
        assert 2 in store

    @pytest.mark.asyncio
    async def test_evict_drops_locks_of_evicted_chats(self):
        store = SessionStore(ttl_seconds=60)
        async with store.exclusive(1):
            pass
        store.get(1).last_active_at = datetime.now(timezone.utc) - timedelta(seconds=120)

        assert store.evict_expired() == [1]
        assert 1 not in store._locks
        assert not store.in_use(1)


class TestExclusive:
    """Per-chat locking."""

    @pytest.mark.asyncio
    async def test_same_chat_is_serialized_in_arrival_order(self):
        store = SessionStore()
        order = []

        async def worker(tag, delay):
            async with store.exclusive(1):
                order.append(f"{tag}-start")
                await asyncio.sleep(delay)
                order.append(f"{tag}-end")

        await asyncio.gather(worker("a", 0.02), worker("b", 0), worker("c", 0))

        assert order == ["a-start", "a-end", "b-start", "b-end", "c-start", "c-end"]

    @pytest.mark.asyncio
    async def test_different_chats_run_concurrently(self):
        store = SessionStore()
        inside = asyncio.Event()
        release = asyncio.Event()

        async def hold_chat_one():
            async with store.exclusive(1):
                inside.set()
                await release.wait()

        holder = asyncio.create_task(hold_chat_one())
        await inside.wait()

        async with store.exclusive(2) as session:
            assert session.chat_id == 2

        release.set()
        await holder

    @pytest.mark.asyncio
    async def test_exclusive_raises_for_expired_session_and_releases_lock(self):
        store = SessionStore(ttl_seconds=60)
        store.get(1).last_active_at = datetime.now(timezone.utc) - timedelta(seconds=120)

        with pytest.raises(SessionExpiredError):
            async with store.exclusive(1):
                pass

        assert not store.in_use(1)
