"""Shared broadcast utility for sending messages to a room's connections."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from highlow.messaging.protocol import ConnectionProtocol


async def broadcast_to_connections(
    connections: Iterable[ConnectionProtocol],
    messages: Iterable[dict[str, Any]],
    exclude_connection_id: str | None = None,
) -> None:
    """Send each message, in order, to every connection except the excluded one.

    The connection list is a snapshot taken under the room lock; sends happen
    after the lock is released. A connection that dropped in the meantime is
    skipped, its disconnect is handled by its own socket loop.
    """
    targets = [c for c in connections if c.connection_id != exclude_connection_id]
    for message in messages:
        for connection in targets:
            with contextlib.suppress(RuntimeError, OSError):
                await connection.send_message(message)
