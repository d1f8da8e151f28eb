import time
from collections.abc import Callable

import structlog

from highlow.session.codes import generate_code
from highlow.session.models import SessionData

logger = structlog.get_logger()

DEFAULT_SESSION_TTL_SECONDS = 24 * 60 * 60


class SessionRegistry:
    """In-memory store for player session data.

    Map session tokens to session data, enabling identity persistence
    across WebSocket connection drops. Entries outlive the player's slot in
    the room (so an evicted player can still be re-admitted) and are removed
    on explicit leave, TTL expiry or deletion of their room.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: dict[str, SessionData] = {}  # session_token -> SessionData
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: SessionData, now: float) -> bool:
        return now - session.last_active_at > self._ttl_seconds

    def generate_token(self) -> str:
        """Return a token not used by any live session."""
        return generate_code(lambda code: code in self._sessions)

    def create_session(
        self,
        connection_id: str,
        username: str,
        room_code: str,
        token: str | None = None,
    ) -> SessionData:
        """Create a session for a player entering a room. Return the session data."""
        token = token or self.generate_token()
        session = SessionData(
            session_token=token,
            connection_id=connection_id,
            username=username,
            room_code=room_code,
            last_active_at=self._clock(),
        )
        self._sessions[token] = session
        return session

    def get_session(self, token: str) -> SessionData | None:
        """Look up a live (unexpired) session by token."""
        session = self._sessions.get(token)
        if session is None or self._is_expired(session, self._clock()):
            return None
        return session

    def rebind(self, token: str, connection_id: str) -> SessionData | None:
        """Point a session at a new connection. Return None if unknown or expired."""
        session = self.get_session(token)
        if session is None:
            return None
        session.connection_id = connection_id
        session.last_active_at = self._clock()
        return session

    def touch(self, token: str) -> None:
        """Refresh the activity timestamp of a session."""
        session = self._sessions.get(token)
        if session is not None:
            session.last_active_at = self._clock()

    def resolve_by_username_and_room(self, username: str, room_code: str) -> SessionData | None:
        """Last-resort lookup by the (username, room) pair a client claims.

        Heuristic: two players may share a username in the same room, in which
        case the most recently active session wins. Only used when the token
        lookup fails.
        """
        now = self._clock()
        matches = [
            session
            for session in self._sessions.values()
            if session.username == username and session.room_code == room_code and not self._is_expired(session, now)
        ]
        if not matches:
            return None
        return max(matches, key=lambda s: s.last_active_at)

    def purge_expired(self, now: float | None = None) -> int:
        """Remove sessions inactive for longer than the TTL. Return how many were removed."""
        now = self._clock() if now is None else now
        expired = [token for token, session in self._sessions.items() if self._is_expired(session, now)]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info("purged expired sessions", count=len(expired))
        return len(expired)

    def purge_for_room(self, room_code: str) -> None:
        """Remove all sessions that point at a room."""
        tokens_to_remove = [token for token, session in self._sessions.items() if session.room_code == room_code]
        for token in tokens_to_remove:
            del self._sessions[token]

    def remove_session(self, token: str) -> None:
        """Remove a single session by token."""
        self._sessions.pop(token, None)
