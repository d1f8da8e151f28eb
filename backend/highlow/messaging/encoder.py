"""
MessagePack codec for the WebSocket wire format.

Every frame is a single MessagePack map with a string ``type`` key. Decoding
enforces size limits so a hostile client cannot make the server allocate
unbounded buffers.
"""

from typing import Any

import msgpack

# Size limits to prevent resource exhaustion from malicious payloads. Client
# intents are tiny; the largest legitimate frame is a full game snapshot.
MAX_BUFFER_LEN = 64 * 1024
MAX_STR_LEN = 16 * 1024
MAX_BIN_LEN = 16 * 1024
MAX_ARRAY_LEN = 1024
MAX_MAP_LEN = 64
MAX_EXT_LEN = 0


class DecodeError(Exception):
    """Raised when an inbound frame is not a valid MessagePack map."""


def encode(data: dict[str, Any]) -> bytes:
    """Encode an outbound message dict to MessagePack bytes."""
    return msgpack.packb(data, use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode an inbound frame to a dict.

    Raises DecodeError if the frame is oversized, malformed, or not a map.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")
    return result
