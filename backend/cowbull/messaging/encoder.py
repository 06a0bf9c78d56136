"""
MessagePack encoder/decoder for the WebSocket wire format.

Every frame is a MessagePack map. Outbound payloads come from pydantic
model_dump(), so they only hold str keys, lists, and scalars.
"""

from typing import Any

import msgpack


class DecodeError(Exception):
    """Error raised when a frame cannot be decoded into a message map."""


# Size limits for inbound frames. Client messages are tiny (a name, a token,
# a four digit code, a chat line), so the caps are tight.
MAX_BUFFER_LEN = 16 * 1024
MAX_STR_LEN = 4 * 1024
MAX_BIN_LEN = 1024
MAX_ARRAY_LEN = 64
MAX_MAP_LEN = 32
MAX_EXT_LEN = 16


def encode(data: dict[str, Any]) -> bytes:
    """
    Encode a message dict to MessagePack bytes.
    """
    return msgpack.packb(data, use_bin_type=True)


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a message dict.

    Raises DecodeError if data is invalid, not a map, or exceeds size limits.
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
