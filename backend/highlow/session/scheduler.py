"""Keyed deferred callbacks for room-scoped timed effects.

Each scheduled effect (grace-period eviction, empty-room deletion, clearing
the newly-dealt flags) runs as an asyncio task that sleeps and then awaits its
callback. Scheduling under an existing key replaces the earlier task.

Cancellation is an optimization only: callbacks must re-check room and player
state when they fire, since a task may already be past its sleep when a
cancel arrives.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def eviction_key(room_code: str, session_id: str) -> str:
    return f"{room_code}:evict:{session_id}"


def room_deletion_key(room_code: str) -> str:
    return f"{room_code}:delete"


def flag_clear_key(room_code: str, pile_index: int) -> str:
    return f"{room_code}:flags:{pile_index}"


class TaskScheduler:
    """Own the asyncio tasks behind all pending deferred callbacks."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __contains__(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def schedule(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        """Run ``callback`` after ``delay`` seconds, replacing any task under ``key``."""
        self.cancel(key)
        task = asyncio.create_task(self._run(key, delay, callback))
        self._tasks[key] = task

    def cancel(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def cancel_room(self, room_code: str) -> None:
        """Cancel every pending task scoped to a room."""
        prefix = f"{room_code}:"
        for key in [k for k in self._tasks if k.startswith(prefix)]:
            self.cancel(key)

    def cancel_all(self) -> None:
        for key in list(self._tasks):
            self.cancel(key)

    async def _run(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(delay)
            # drop the entry before running so the callback may reschedule the same key
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
            await callback()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("scheduled callback %s failed", key)
