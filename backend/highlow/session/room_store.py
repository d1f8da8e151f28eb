"""Room lifecycle storage: creation, lookup, deletion and stale-room detection."""

import asyncio
import time
from collections.abc import Callable

import structlog

from highlow.logic.game import join_player
from highlow.logic.settings import GameSettings
from highlow.logic.state import GameSession, Player
from highlow.session.codes import generate_code
from highlow.session.session_store import SessionRegistry

logger = structlog.get_logger()


class RoomStore:
    """Own every live GameSession and its lock.

    One asyncio.Lock per room serializes all intents for that room; rooms are
    independent of each other. Deleting a room purges the registry entries
    pointing at it in the same synchronous step, so no await can observe a
    registry entry for a missing room.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        settings: GameSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._settings = settings or GameSettings()
        self._clock = clock
        self._rooms: dict[str, GameSession] = {}  # room_code -> GameSession
        self._room_locks: dict[str, asyncio.Lock] = {}  # room_code -> Lock

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def generate_room_code(self) -> str:
        return generate_code(lambda code: code in self._rooms)

    def create_room(self, host_connection_id: str, host_username: str, session_id: str) -> tuple[str, GameSession]:
        """Allocate a fresh code and a WAITING session whose only player is the host."""
        room_code = self.generate_room_code()
        session = GameSession(id=room_code, settings=self._settings, created_at=self._clock())
        join_player(session, host_connection_id, session_id, host_username)
        self._rooms[room_code] = session
        self._room_locks[room_code] = asyncio.Lock()
        logger.info("room created", room_code=room_code)
        return room_code, session

    def get_room(self, room_code: str) -> GameSession | None:
        return self._rooms.get(room_code)

    def get_lock(self, room_code: str) -> asyncio.Lock | None:
        """Get the per-room lock, or None if the room does not exist (or was deleted)."""
        return self._room_locks.get(room_code)

    def delete_room(self, room_code: str) -> GameSession | None:
        """Remove a room and purge registry entries that point at it."""
        session = self._rooms.pop(room_code, None)
        self._room_locks.pop(room_code, None)
        self._registry.purge_for_room(room_code)
        if session is not None:
            logger.info("room deleted", room_code=room_code)
        return session

    def find_stale_rooms(self, now: float, ttl_seconds: float) -> list[str]:
        """Rooms where every player has been disconnected for longer than ``ttl_seconds``.

        Empty rooms older than the TTL also qualify (their scheduled deletion
        was lost or never happened).
        """
        return [room_code for room_code, session in list(self._rooms.items()) if is_stale(session, now, ttl_seconds)]


def _disconnected_longer_than(player: Player, now: float, ttl_seconds: float) -> bool:
    return player.disconnected and player.disconnected_at is not None and now - player.disconnected_at > ttl_seconds


def is_stale(session: GameSession, now: float, ttl_seconds: float) -> bool:
    if session.is_empty:
        return now - session.created_at > ttl_seconds
    return all(_disconnected_longer_than(p, now, ttl_seconds) for p in session.players)
