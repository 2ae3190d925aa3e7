"""Bridge a child process output pipe into LogEvents."""

import asyncio
import logging
from typing import Callable

from nodesim.events.log_schema import parse_node_log
from nodesim.events.types import LogEvent, OutputStream, ProcessRole

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


async def pump_output(
    stream: asyncio.StreamReader,
    *,
    node: str,
    proc: ProcessRole,
    stream_type: OutputStream,
    emit: Callable[[LogEvent], None],
) -> None:
    """
    Read ``stream`` chunk by chunk until EOF, emitting one LogEvent per chunk.

    Chunks are not split into lines; a chunk holding one JSON log record gets
    its parsed payload attached.
    """
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        message = chunk.decode("utf-8", errors="replace")
        emit(
            LogEvent(
                node=node,
                proc=proc,
                type=stream_type,
                message=message,
                json_message=parse_node_log(message),
            )
        )
    logger.debug("%s %s reached EOF for %s", proc, stream_type, node)
