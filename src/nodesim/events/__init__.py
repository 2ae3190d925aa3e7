"""Events published by simulated nodes."""

from .event_bus import EventBus, EventChannel
from .handlers import default_on_error, default_on_exit
from .log_schema import NodeLogMessage, parse_node_log
from .types import (
    Block,
    BlockStreamItem,
    ErrorEvent,
    ExitEvent,
    LogEvent,
    MalformedBlockError,
    ProcessRole,
    Transaction,
)

__all__ = [
    "Block",
    "BlockStreamItem",
    "ErrorEvent",
    "EventBus",
    "EventChannel",
    "ExitEvent",
    "LogEvent",
    "MalformedBlockError",
    "NodeLogMessage",
    "ProcessRole",
    "Transaction",
    "default_on_error",
    "default_on_exit",
    "parse_node_log",
]
