"""Wait for a transaction to show up in a connected block."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from nodesim.events import EventChannel
from nodesim.events.types import Block, BlockStreamItem

logger = logging.getLogger(__name__)


class ConfirmationWaiter:
    """
    One-shot subscriber to block events.

    The returned future resolves with the first connected block containing the
    transaction, or with None once a connected block reaches
    ``expiration_sequence``. Without an expiration the waiter stays subscribed
    until a match arrives or the future is cancelled. Concurrent waiters for the
    same hash are independent.
    """

    def __init__(self, channel: EventChannel[BlockStreamItem], transaction_hash: str, expiration_sequence: Optional[int] = None):
        self.channel = channel
        self.transaction_hash = transaction_hash
        self.expiration_sequence = expiration_sequence
        self.future: Optional[asyncio.Future[Optional[Block]]] = None
        self._subscribed = False

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    def start(self) -> asyncio.Future[Optional[Block]]:
        if self.future is not None:
            return self.future
        self.future = asyncio.get_running_loop().create_future()
        # Covers a caller cancelling the future before any block resolves it.
        self.future.add_done_callback(lambda _: self._unsubscribe())
        self.channel.subscribe(self._check_block)
        self._subscribed = True
        return self.future

    def _check_block(self, item: BlockStreamItem) -> None:
        future = self.future
        if future is None or future.done() or item.type != "connected":
            return
        if item.block.has_transaction(self.transaction_hash):
            logger.debug("Transaction %s confirmed in block %s", self.transaction_hash, item.block.sequence)
            self._resolve(future, item.block)
        elif self.expiration_sequence is not None and item.block.sequence >= self.expiration_sequence:
            logger.debug(
                "Transaction %s not found before expiration sequence %s",
                self.transaction_hash,
                self.expiration_sequence,
            )
            self._resolve(future, None)

    def _resolve(self, future: asyncio.Future, block: Optional[Block]) -> None:
        self._unsubscribe()
        future.set_result(block)

    def _unsubscribe(self) -> None:
        if not self._subscribed:
            return
        self._subscribed = False
        self.channel.unsubscribe(self._check_block)


def wait_for_transaction(
    channel: EventChannel[BlockStreamItem],
    transaction_hash: str,
    expiration_sequence: Optional[int] = None,
) -> asyncio.Future[Optional[Block]]:
    """Return a future for the block confirming ``transaction_hash`` (None when it expired)."""
    return ConfirmationWaiter(channel, transaction_hash, expiration_sequence).start()
