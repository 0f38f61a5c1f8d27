"""MessagePack codec for the room WebSocket protocol.

Every frame is a single MessagePack map. Commands from clients are small
(the largest is an UPDATE_BET with a handful of letters), so the decoder
limits are tight.
"""

from typing import Any

import msgpack

MAX_BUFFER_LEN = 16 * 1024
MAX_STR_LEN = 4 * 1024
MAX_BIN_LEN = 1024
MAX_ARRAY_LEN = 256
MAX_MAP_LEN = 64
MAX_EXT_LEN = 0


class DecodeError(Exception):
    """Frame is not a MessagePack map or exceeds the size limits."""


def _stringify_keys(obj: object) -> object:
    """Convert integer map keys to strings; strict MessagePack readers reject them."""
    if isinstance(obj, dict):
        return {str(k) if isinstance(k, int) else k: _stringify_keys(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_stringify_keys(item) for item in obj]
    return obj


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(_stringify_keys(data))


def decode(data: bytes) -> dict[str, Any]:
    """Decode one frame. Raises DecodeError on oversized, invalid, or non-map payloads."""
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            strict_map_key=True,
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
