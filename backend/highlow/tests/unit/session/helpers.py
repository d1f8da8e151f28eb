from __future__ import annotations

from typing import TYPE_CHECKING

from highlow.messaging.types import SessionMessageType
from highlow.tests.mocks import MockConnection

if TYPE_CHECKING:
    from collections.abc import Sequence

    from highlow.session.manager import SessionManager


# short enough to wait out in a test, long enough to act before timers fire
GRACE_SECONDS = 0.05


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def create_room(
    manager: SessionManager,
    usernames: Sequence[str] = ("Alice", "Bob"),
) -> tuple[str, list[MockConnection]]:
    """Create a room through the session flow: first name hosts, the rest join.

    Message history is cleared so tests only see what they trigger.
    """
    host = MockConnection()
    manager.register_connection(host)
    await manager.create_game(host, usernames[0])
    room_code = host.last_of_type(SessionMessageType.GAME_CREATED)["room_code"]

    connections = [host]
    for name in usernames[1:]:
        conn = MockConnection()
        manager.register_connection(conn)
        await manager.join_game(conn, room_code, name)
        connections.append(conn)

    for conn in connections:
        conn.clear()
    return room_code, connections


def token_of(manager: SessionManager, connection: MockConnection) -> str:
    return manager._bindings[connection.connection_id].session_token


def message_types(connection: MockConnection) -> list[str]:
    return [m["type"] for m in connection.sent_messages]
