"""
Consume a node's chain-follow stream and republish it as block events.

The streaming RPC cannot be closed or reopened on the node, so each node owns
exactly one consumer and the consumer can be started once. If the stream ends
or fails while the node is not shutting down, the failure is reported as a
StreamFailureError and monitoring of that node stops; there is no automatic
reconnect.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional

from nodesim.events import EventBus
from nodesim.events.types import BlockStreamItem, MalformedBlockError
from nodesim.exceptions import (
    BlockStreamAlreadyStartedError,
    RpcConnectionClosedError,
    RpcError,
    StreamFailureError,
)
from nodesim.rpc import RpcTcpClient

logger = logging.getLogger(__name__)


class BlockStreamConsumer:
    """Bridges ``chain/followChainStream`` into ``bus.on_block``."""

    def __init__(
        self,
        node_name: str,
        client: RpcTcpClient,
        bus: EventBus,
        *,
        on_failure: Optional[Callable[[StreamFailureError], None]] = None,
        is_shutting_down: Callable[[], bool] = lambda: False,
    ):
        self.node_name = node_name
        self.client = client
        self.bus = bus
        self._on_failure = on_failure
        self._is_shutting_down = is_shutting_down
        self._task: Optional[asyncio.Task] = None
        self.failure: Optional[StreamFailureError] = None
        self.items_received = 0

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, starting_block_hash: str) -> asyncio.Task:
        """
        Open the stream from ``starting_block_hash`` and consume it in the background.

        Raises:
            BlockStreamAlreadyStartedError: If this consumer was already started
        """
        if self._task is not None:
            raise BlockStreamAlreadyStartedError(f"Block stream for {self.node_name} was already started")
        logger.debug("Starting block stream for %s from %s", self.node_name, starting_block_hash)
        self._task = asyncio.create_task(self._consume(starting_block_hash), name=f"{self.node_name}:block-stream")
        return self._task

    async def stop(self) -> None:
        """Stop local delivery. The RPC call itself stays open until the node or socket goes away."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _consume(self, starting_block_hash: str) -> None:
        try:
            async for payload in self.client.follow_chain_stream(starting_block_hash):
                try:
                    item = BlockStreamItem.from_payload(payload)
                except MalformedBlockError as exc:
                    logger.warning("Skipping malformed block stream item for %s: %s", self.node_name, exc)
                    continue
                self.items_received += 1
                self.bus.on_block.emit(item)
        except (RpcError, RpcConnectionClosedError, OSError) as exc:
            self._fail(f"Block stream for {self.node_name} failed: {exc}", exc)
        else:
            self._fail(f"Block stream for {self.node_name} ended unexpectedly", None)

    def _fail(self, message: str, cause: Optional[BaseException]) -> None:
        if self._is_shutting_down():
            logger.debug("Block stream for %s closed during shutdown", self.node_name)
            return
        failure = StreamFailureError(message, node=self.node_name)
        failure.__cause__ = cause
        self.failure = failure
        logger.error("%s", message)
        if self._on_failure is not None:
            self._on_failure(failure)
