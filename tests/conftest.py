"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import os
import socket
import stat
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import pytest
import pytest_asyncio

from nodesim.rpc import routes
from nodesim.rpc.framing import MessageBuffer, encode_message

# Keep connection retries short in tests
os.environ.setdefault("NODESIM_RPC_CONNECT_ATTEMPTS", "40")
os.environ.setdefault("NODESIM_RPC_CONNECT_INTERVAL_SECONDS", "0.1")
os.environ.setdefault("NODESIM_RPC_REQUEST_TIMEOUT_SECONDS", "5")

FAKE_NODE_SCRIPT = Path(__file__).parent / "helpers" / "fake_node.py"


def unused_port() -> int:
    """Return a TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FakeRpcServer:
    """In-process server speaking the node's framed RPC protocol."""

    def __init__(self) -> None:
        self.chain_head = "00ab"
        self.block_items: asyncio.Queue = asyncio.Queue()
        self.requests: List[Tuple[str, Any]] = []
        self.stop_status = 200
        self.port: Optional[int] = None
        self._server: Optional[asyncio.base_events.Server] = None
        self._writers: List[asyncio.StreamWriter] = []
        self._tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        self.drop_connections()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    def drop_connections(self) -> None:
        for writer in self._writers:
            writer.close()
        self._writers = []

    def push_block(self, item: Optional[dict]) -> None:
        """Queue a block stream item; None ends the stream."""
        self.block_items.put_nowait(item)

    async def _send(self, writer: asyncio.StreamWriter, message: dict) -> None:
        writer.write(encode_message(message))
        await writer.drain()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.append(writer)
        buffer = MessageBuffer()
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                for message in buffer.feed(data):
                    await self._respond(writer, message["data"])
        except ConnectionError:
            pass

    async def _respond(self, writer: asyncio.StreamWriter, request: dict) -> None:
        mid = request["mid"]
        route = request["type"]
        self.requests.append((route, request.get("data")))
        if route == routes.GET_CHAIN_INFO:
            body = {"currentBlockIdentifier": {"index": "1", "hash": self.chain_head}}
            await self._send(writer, {"type": "message", "data": {"id": mid, "status": 200, "data": body}})
        elif route == routes.FOLLOW_CHAIN_STREAM:
            self._tasks.append(asyncio.create_task(self._stream_blocks(writer, mid)))
        elif route == routes.STOP_NODE:
            body = None if self.stop_status < 400 else {"code": "error", "message": "cannot stop"}
            await self._send(writer, {"type": "message", "data": {"id": mid, "status": self.stop_status, "data": body}})
        else:
            body = {"code": "route-not-found", "message": f"No route {route}"}
            await self._send(writer, {"type": "message", "data": {"id": mid, "status": 404, "data": body}})

    async def _stream_blocks(self, writer: asyncio.StreamWriter, mid: int) -> None:
        while True:
            item = await self.block_items.get()
            if item is None:
                await self._send(writer, {"type": "message", "data": {"id": mid, "status": 200, "data": None}})
                return
            await self._send(writer, {"type": "stream", "data": {"id": mid, "data": item}})


@pytest_asyncio.fixture
async def rpc_server():
    server = FakeRpcServer()
    await server.start()
    yield server
    await server.close()


@pytest.fixture
def fake_node_binary(tmp_path: Path) -> str:
    """Executable that behaves like a node binary: serves RPC on start, idles as a miner."""
    binary = tmp_path / "fake-node"
    binary.write_text(f"#!{sys.executable}\n" + FAKE_NODE_SCRIPT.read_text())
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(binary)


def block_item(sequence: int, *tx_hashes: str, event_type: str = "connected", block_hash: Optional[str] = None) -> dict:
    return {
        "type": event_type,
        "block": {
            "hash": block_hash or f"block-{sequence}",
            "sequence": sequence,
            "transactions": [{"hash": tx} for tx in tx_hashes],
        },
    }


@pytest.fixture
def make_block_item():
    return block_item


@pytest.fixture
def free_port() -> int:
    return unused_port()
