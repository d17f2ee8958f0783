"""Per-party serialization for lifecycle operations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class _PartyLockState:
    """Lock plus the number of tasks currently holding or waiting for it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class PartyLockRegistry:
    """
    Provide one FIFO mutual-exclusion token per party id.

    Guarantees:
        1. At most one holder per party id at any time.
        2. Waiters on the same id acquire in the order they asked.
        3. Different ids never block each other.

    An id's state is dropped as soon as nobody holds or waits on it, so the
    registry only grows with the number of parties being acted on right now.
    """

    def __init__(self) -> None:
        self._states: dict[str, _PartyLockState] = {}

    @asynccontextmanager
    async def acquire(self, party_id: str) -> AsyncIterator[None]:
        """
        Hold the token for ``party_id`` for the duration of the block.

        Args:
            party_id: Party whose operations must be serialized.
        """
        # Registration happens before the first await so submission order is
        # the order tasks join the lock's waiter queue.
        state = self._states.get(party_id)
        if state is None:
            state = _PartyLockState()
            self._states[party_id] = state
        state.users += 1
        try:
            async with state.lock:
                yield
        finally:
            state.users -= 1
            if state.users == 0 and self._states.get(party_id) is state:
                del self._states[party_id]

    def is_locked(self, party_id: str) -> bool:
        state = self._states.get(party_id)
        return state is not None and state.lock.locked()

    def __len__(self) -> int:
        return len(self._states)


__all__ = ["PartyLockRegistry"]
