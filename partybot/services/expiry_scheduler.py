"""
Expiry timers for active parties.

Each party gets one deferred task that fires ``timeout`` after the party's
creation time. Deadlines are computed from ``created_at`` rather than from
when the timer was armed, so a restart never extends a party's lifetime.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from anyio import sleep

from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once

logger = get_logger(__name__)

ExpireCallback = Callable[[str], Awaitable[object]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExpiryScheduler:
    """
    Arms one one-shot expiry task per party id.

    The callback must be idempotent: a party disbanded while its timer is
    already running is expected to be absent when the callback fires.
    """

    def __init__(self, timeout: timedelta, on_expire: ExpireCallback, *, clock: Clock = _utcnow) -> None:
        self._timeout = timeout
        self._on_expire = on_expire
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    def remaining(self, created_at: datetime) -> timedelta:
        """Time left before a party created at ``created_at`` expires, never negative."""
        elapsed = self._clock() - created_at
        return max(timedelta(0), self._timeout - elapsed)

    def is_overdue(self, created_at: datetime) -> bool:
        return self.remaining(created_at) == timedelta(0)

    def arm(self, party_id: str, created_at: datetime) -> timedelta:
        """
        Schedule expiry for ``party_id``. Re-arming replaces the previous timer.

        Must be called from within a running event loop.

        Returns:
            The delay until the timer fires.
        """
        self.cancel(party_id)
        remaining = self.remaining(created_at)
        task = asyncio.create_task(self._fire_after(party_id, remaining.total_seconds()), name=f"expire:{party_id}")
        self._tasks[party_id] = task
        task.add_done_callback(lambda done, pid=party_id: self._forget(pid, done))
        logger.debug(
            "Lock timer set for party",
            party_id=party_id,
            minutes_remaining=round(remaining.total_seconds() / 60),
        )
        return remaining

    def cancel(self, party_id: str) -> bool:
        """Cancel a pending timer. Returns False if none was pending."""
        task = self._tasks.pop(party_id, None)
        if task is None or task.done():
            return False
        # Never cancel the timer from inside its own callback
        if task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def pending(self) -> list[str]:
        return [party_id for party_id, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel every pending timer and wait for them to finish unwinding."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Expiry scheduler stopped", cancelled=len(tasks))

    def _forget(self, party_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(party_id) is task:
            del self._tasks[party_id]

    async def _fire_after(self, party_id: str, delay: float) -> None:
        await sleep(delay)
        try:
            await self._on_expire(party_id)
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: A failing expiry must not surface as an unretrieved task exception
            log_exception_once(logger, "error", "Party expiry failed", exc=e, party_id=party_id, exc_info=True)


__all__ = ["ExpiryScheduler"]
