"""
TCP RPC client for a running node.

A single reader task demultiplexes responses by message id. Each request owns
a queue receiving its stream chunks followed by exactly one terminal response.
When the socket closes, every in-flight request fails with
RpcConnectionClosedError.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Tuple

from nodesim.exceptions import RpcConnectionClosedError, RpcError

from . import routes
from .framing import MessageBuffer, encode_message

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024
CONNECT_TIMEOUT_SECONDS = 5.0

_STREAM = "stream"
_RESPONSE = "response"
_FAILED = "failed"


class _PendingRequest:
    def __init__(self, mid: int, route: str):
        self.mid = mid
        self.route = route
        self.queue: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue()


class RpcTcpClient:
    """Client for the node's TCP RPC listener."""

    def __init__(self, host: str, port: int, *, request_timeout: Optional[float] = None):
        self.host = host
        self.port = port
        self.request_timeout = request_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, _PendingRequest] = {}
        self._next_mid = 1

    @property
    def is_connected(self) -> bool:
        return self._writer is not None and self._read_task is not None and not self._read_task.done()

    async def connect(self) -> None:
        """
        Open the TCP connection.

        Raises:
            OSError: If the connection cannot be established
            asyncio.TimeoutError: If the node does not accept within the connect timeout
        """
        if self.is_connected:
            return
        self._reader, self._writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port), timeout=CONNECT_TIMEOUT_SECONDS
        )
        self._read_task = asyncio.create_task(self._read_loop(self._reader), name=f"rpc:{self.host}:{self.port}")
        logger.debug("Connected RPC client to %s:%s", self.host, self.port)

    async def try_connect(self) -> bool:
        """Attempt to connect once; returns False instead of raising on failure."""
        try:
            await self.connect()
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("RPC connect to %s:%s failed: %s", self.host, self.port, exc)
            return False
        return True

    async def close(self) -> None:
        writer, read_task = self._writer, self._read_task
        self._writer = None
        self._read_task = None
        if writer is not None:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
        if read_task is not None and not read_task.done():
            read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await read_task
        self._fail_pending(RpcConnectionClosedError("RPC client closed"))

    async def request(self, route: str, data: Any = None) -> Any:
        """
        Send a request and wait for its terminal response body.

        Raises:
            RpcError: If the node answers with an error status
            RpcConnectionClosedError: If the socket closes first
            asyncio.TimeoutError: If ``request_timeout`` elapses
        """
        pending = await self._send(route, data)
        try:
            return await asyncio.wait_for(self._await_response(pending), timeout=self.request_timeout)
        finally:
            self._pending.pop(pending.mid, None)

    async def stream(self, route: str, data: Any = None) -> AsyncIterator[Any]:
        """
        Send a streaming request and yield each chunk until the terminal response.

        There is no way to cancel the request on the node; closing the
        iterator only stops local delivery.
        """
        pending = await self._send(route, data)
        try:
            while True:
                kind, payload = await pending.queue.get()
                if kind == _STREAM:
                    yield payload
                    continue
                self._unwrap(pending, kind, payload)
                return
        finally:
            self._pending.pop(pending.mid, None)

    async def get_chain_info(self) -> Mapping[str, Any]:
        return await self.request(routes.GET_CHAIN_INFO)

    def follow_chain_stream(self, head: str) -> AsyncIterator[Any]:
        return self.stream(routes.FOLLOW_CHAIN_STREAM, {"head": head})

    async def stop_node(self) -> Any:
        return await self.request(routes.STOP_NODE)

    async def _send(self, route: str, data: Any) -> _PendingRequest:
        if not self.is_connected or self._writer is None:
            raise RpcConnectionClosedError(f"RPC client for {self.host}:{self.port} is not connected")

        mid = self._next_mid
        self._next_mid += 1
        pending = _PendingRequest(mid, route)
        self._pending[mid] = pending

        message = {"type": "message", "data": {"mid": mid, "type": route, "data": data}}
        try:
            self._writer.write(encode_message(message))
            await self._writer.drain()
        except OSError as exc:
            self._pending.pop(mid, None)
            raise RpcConnectionClosedError(f"Failed to send {route} request: {exc}") from exc
        return pending

    async def _await_response(self, pending: _PendingRequest) -> Any:
        while True:
            kind, payload = await pending.queue.get()
            if kind == _STREAM:
                continue
            return self._unwrap(pending, kind, payload)

    @staticmethod
    def _unwrap(pending: _PendingRequest, kind: str, payload: Any) -> Any:
        if kind == _FAILED:
            raise payload
        status, body = payload
        if status is not None and status >= routes.ERROR_STATUS_THRESHOLD:
            message = body.get("message") if isinstance(body, Mapping) else None
            code = body.get("code") if isinstance(body, Mapping) else None
            raise RpcError(
                f"{pending.route} failed with status {status}: {message or body}",
                status=status,
                code=code,
            )
        return body

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        buffer = MessageBuffer()
        reason = "RPC connection closed by node"
        try:
            while True:
                data = await reader.read(READ_CHUNK_SIZE)
                if not data:
                    break
                for message in buffer.feed(data):
                    self._dispatch(message)
        except OSError as exc:
            reason = f"RPC connection lost: {exc}"
            logger.debug("RPC read from %s:%s failed: %s", self.host, self.port, exc)
        finally:
            self._fail_pending(RpcConnectionClosedError(reason))

    def _dispatch(self, message: Any) -> None:
        if not isinstance(message, Mapping):
            logger.warning("Ignoring non-object RPC message: %r", message)
            return
        kind = message.get("type")
        data = message.get("data")
        if not isinstance(data, Mapping):
            data = {}

        if kind == "malformedRequest":
            error = RpcError(f"Malformed request: {data.get('message') or data}", code=data.get("code"))
            target = self._pending.get(data.get("id"))
            if target is None:
                self._fail_pending(error)
            else:
                target.queue.put_nowait((_FAILED, error))
            return

        pending = self._pending.get(data.get("id"))
        if pending is None:
            logger.debug("Dropping RPC %s message for unknown id %r", kind, data.get("id"))
            return

        if kind == "stream":
            pending.queue.put_nowait((_STREAM, data.get("data")))
        elif kind == "message":
            pending.queue.put_nowait((_RESPONSE, (data.get("status"), data.get("data"))))
        else:
            logger.warning("Ignoring RPC message of unknown type %r", kind)

    def _fail_pending(self, error: Exception) -> None:
        for pending in list(self._pending.values()):
            pending.queue.put_nowait((_FAILED, error))
