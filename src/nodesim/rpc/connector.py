"""Bounded-retry RPC connection establishment for freshly started nodes."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from nodesim.exceptions import ConnectionFailureError
from nodesim.rpc_config import DEFAULT_CONNECT_ATTEMPTS, DEFAULT_CONNECT_INTERVAL_SECONDS

from .client import RpcTcpClient

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


async def connect_with_retry(
    client: RpcTcpClient,
    *,
    max_attempts: int = DEFAULT_CONNECT_ATTEMPTS,
    interval: float = DEFAULT_CONNECT_INTERVAL_SECONDS,
    sleep: SleepFunc = asyncio.sleep,
) -> RpcTcpClient:
    """
    Connect ``client``, trying up to ``max_attempts`` times ``interval`` seconds apart.

    Only connection establishment is retried; requests made after connecting
    surface their failures to the caller as-is.

    Raises:
        ConnectionFailureError: If every attempt failed
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1 (got {max_attempts})")

    for attempt in range(1, max_attempts + 1):
        if await client.try_connect():
            logger.debug("Connected to %s:%s after %d attempt(s)", client.host, client.port, attempt)
            return client
        if attempt < max_attempts:
            await sleep(interval)

    logger.error("Failed to connect to %s:%s after %d attempts", client.host, client.port, max_attempts)
    raise ConnectionFailureError(
        f"Failed to connect to node at {client.host}:{client.port} after {max_attempts} attempts",
        host=client.host,
        port=client.port,
        attempts=max_attempts,
    )


async def connect(
    host: str,
    port: int,
    *,
    max_attempts: int = DEFAULT_CONNECT_ATTEMPTS,
    interval: float = DEFAULT_CONNECT_INTERVAL_SECONDS,
    request_timeout: Optional[float] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> RpcTcpClient:
    """Create a client for ``host:port`` and connect it with bounded retry."""
    client = RpcTcpClient(host, port, request_timeout=request_timeout)
    return await connect_with_retry(client, max_attempts=max_attempts, interval=interval, sleep=sleep)
