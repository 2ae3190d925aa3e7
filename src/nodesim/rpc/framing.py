"""
Wire framing for the node's TCP RPC protocol.

Messages are UTF-8 JSON documents separated by a form-feed byte.
"""

from __future__ import annotations

import logging
from typing import Any, List

import orjson

logger = logging.getLogger(__name__)

MESSAGE_DELIMITER = b"\f"


def encode_message(message: Any) -> bytes:
    """Serialize ``message`` and append the delimiter."""
    return orjson.dumps(message) + MESSAGE_DELIMITER


class MessageBuffer:
    """Accumulates socket reads and yields complete decoded messages."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, data: bytes) -> List[Any]:
        self._buffer.extend(data)
        *frames, rest = bytes(self._buffer).split(MESSAGE_DELIMITER)
        self._buffer = bytearray(rest)

        messages = []
        for frame in frames:
            if not frame.strip():
                continue
            try:
                messages.append(orjson.loads(frame))
            except orjson.JSONDecodeError:
                logger.warning("Discarding malformed RPC frame (%d bytes)", len(frame))
        return messages
