"""
Publish/subscribe channels for SimulationNode events.

Each node owns one EventBus with four independent channels. Handlers run
synchronously on the event loop thread in subscription order; a handler that
returns a coroutine has it scheduled as a task. Every emit dispatches to a
snapshot of the subscriber list, so handlers may subscribe or unsubscribe
(themselves or others) while an event is being delivered.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, TypeVar, Union

from nodesim.async_helpers import schedule_coroutine

from .types import BlockStreamItem, ErrorEvent, ExitEvent, LogEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Union[None, Awaitable[None]]]


class EventChannel(Generic[T]):
    """
    Single typed channel.

    Usage:
        channel: EventChannel[LogEvent] = EventChannel("log")
        channel.subscribe(my_handler)
        channel.emit(event)
    """

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Handler[T]] = []

    def subscribe(self, handler: Handler[T]) -> None:
        self._subscribers.append(handler)

    def unsubscribe(self, handler: Handler[T]) -> bool:
        """Remove ``handler``; returns False when it was not subscribed."""
        try:
            self._subscribers.remove(handler)
        except ValueError:
            return False
        return True

    def clear(self) -> None:
        self._subscribers = []

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, event: T) -> None:
        """
        Deliver ``event`` to every handler subscribed at the time of the call.

        Exceptions in one handler do not prevent other handlers from running.
        """
        for handler in list(self._subscribers):
            try:
                result = handler(event)
            except Exception:
                logger.exception("Error in %s handler %s", self.name, _handler_name(handler))
                continue
            if asyncio.iscoroutine(result):
                schedule_coroutine(result, name=f"{self.name}:{_handler_name(handler)}")


def _handler_name(handler: Any) -> str:
    return getattr(handler, "__qualname__", repr(handler))


@dataclass
class EventBus:
    """The four channels a SimulationNode publishes on."""

    on_log: EventChannel[LogEvent] = field(default_factory=lambda: EventChannel("log"))
    on_error: EventChannel[ErrorEvent] = field(default_factory=lambda: EventChannel("error"))
    on_exit: EventChannel[ExitEvent] = field(default_factory=lambda: EventChannel("exit"))
    on_block: EventChannel[BlockStreamItem] = field(default_factory=lambda: EventChannel("block"))

    def clear(self) -> None:
        """Remove all subscriptions on every channel."""
        self.on_log.clear()
        self.on_error.clear()
        self.on_exit.clear()
        self.on_block.clear()
