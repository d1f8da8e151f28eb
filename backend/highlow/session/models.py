from dataclasses import dataclass


@dataclass
class SessionData:
    """Durable player identity that survives WebSocket disconnects.

    Keyed by session token in the SessionRegistry. ``room_code`` is a
    back-reference only; the room itself lives in the RoomStore.
    """

    session_token: str
    connection_id: str
    username: str
    room_code: str
    last_active_at: float  # time.time() timestamp of the last bind or touch


@dataclass
class ConnectionBinding:
    """Which player session a live connection currently speaks for.

    Lifecycle:
    - Created on create_game / join_game / successful reconnect
    - Moved to the new connection when the same session reconnects elsewhere
    - Removed on leave_game and on transport disconnect
    """

    session_token: str
    room_code: str
