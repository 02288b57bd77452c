"""
Sequence number management for the custodial account.

Aptos orders an account's transactions by a monotonically increasing
sequence number. The node only reports the committed value, so after a
broadcast and before commit it still hands out the number that was just
used. This manager remembers what has been handed out locally and never
goes backwards while a broadcast is unconfirmed.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from ...providers.aptos import AptosRestClient
from ...services.address import normalize_address


logger = logging.getLogger(__name__)

# Allowance for drift between the local clock and the chain's timestamp
EXPIRY_GRACE_S = 5


@dataclass
class SequenceState:
    """Tracks sequence number state for one account."""
    address: str
    committed: int                              # Last value reported by the node
    next_sequence: int                          # Next value to hand out
    in_flight: Set[int] = field(default_factory=set)
    deadlines: Dict[int, float] = field(default_factory=dict)   # sequence -> expiration (unix s)
    needs_resync: bool = False
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def forget(self, sequence: int) -> None:
        self.in_flight.discard(sequence)
        self.deadlines.pop(sequence, None)


class SequenceNumberManager:
    """
    Hands out sequence numbers for accounts signed by this process.

    - Syncs with the node on every reservation, but never lowers the local
      counter below a number that is still in flight.
    - A released number (failure before broadcast) marks the account for a
      full resync, since the node may or may not have seen it.
    - A broadcast number stays in flight until the node moves past it or
      its transaction's expiration passes. Only then can it be reused.
    """

    def __init__(self, client: AptosRestClient):
        self._client = client
        self._states: Dict[str, SequenceState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_key(self, address: str) -> str:
        return normalize_address(address)

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _prune(self, state: SequenceState, on_chain: int, now: float) -> None:
        for sequence in sorted(state.in_flight):
            if sequence < on_chain:
                state.forget(sequence)
                continue
            deadline = state.deadlines.get(sequence)
            if deadline is not None and deadline + EXPIRY_GRACE_S < now:
                logger.warning(f"Sequence {sequence} for {state.address} expired without committing")
                state.forget(sequence)
                state.needs_resync = True

    async def reserve(self, address: str, expires_at: Optional[float] = None) -> int:
        """
        Reserve the next sequence number for an address.

        Args:
            address: Account address
            expires_at: Expiration timestamp of the transaction that will
                carry this number. Once it passes, the number can no longer
                be consumed and is dropped from the in-flight set.

        Returns:
            The reserved sequence number
        """
        key = self._get_key(address)

        async with self._get_lock(key):
            on_chain = await self._client.get_sequence_number(address)
            state = self._states.get(key)

            if state is None:
                state = SequenceState(address=key, committed=on_chain, next_sequence=on_chain)
                self._states[key] = state
            else:
                state.committed = on_chain
                self._prune(state, on_chain, time.time())
                if state.needs_resync and not state.in_flight:
                    state.next_sequence = on_chain
                    state.needs_resync = False
                elif on_chain > state.next_sequence:
                    state.next_sequence = on_chain
                state.last_updated = datetime.now(timezone.utc)

            sequence = state.next_sequence
            state.in_flight.add(sequence)
            if expires_at is not None:
                state.deadlines[sequence] = expires_at
            state.next_sequence = sequence + 1

            logger.debug(f"Reserved sequence {sequence} for {key} (node at {on_chain})")
            return sequence

    async def release(self, address: str, sequence: int) -> None:
        """
        Give back a reserved number (transaction never broadcast).

        The account is flagged so the next reservation trusts the node's
        view once nothing else is in flight. Never call this for a number
        that reached the node.
        """
        key = self._get_key(address)

        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.forget(sequence)
            if sequence == state.next_sequence - 1:
                state.next_sequence = sequence
            state.needs_resync = True

    async def confirm(self, address: str, sequence: int) -> None:
        """Mark a sequence number as committed on chain."""
        key = self._get_key(address)

        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.forget(sequence)
            if sequence >= state.committed:
                state.committed = sequence + 1

    async def get_state(self, address: str) -> Optional[SequenceState]:
        """Get the current state for an address."""
        return self._states.get(self._get_key(address))
