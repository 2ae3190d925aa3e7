"""Detection of structured (JSON) log lines emitted by the node binary."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import orjson

from nodesim.validation import find_missing_fields

REQUIRED_LOG_FIELDS = ("date", "level", "message", "tag")


@dataclass(frozen=True)
class NodeLogMessage:
    """Parsed form of a node's JSON log line."""

    date: str
    level: str
    message: str
    tag: str


def parse_node_log(message: str) -> Optional[NodeLogMessage]:
    """
    Return the structured payload of ``message`` or None.

    A chunk that is not JSON, or is JSON of another shape, is ordinary
    unstructured output; this function never raises for it.
    """
    text = message.strip()
    if not text.startswith("{"):
        return None
    try:
        payload = orjson.loads(text)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or find_missing_fields(payload, REQUIRED_LOG_FIELDS):
        return None
    if not all(isinstance(payload[name], str) for name in REQUIRED_LOG_FIELDS):
        return None
    return NodeLogMessage(**{name: payload[name] for name in REQUIRED_LOG_FIELDS})
