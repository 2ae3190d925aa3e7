"""Chain queries built on the RPC client."""

from typing import Any, Mapping

from nodesim.exceptions import RpcError

from .client import RpcTcpClient


async def get_latest_block_hash(client: RpcTcpClient) -> str:
    """Return the hash of the node's current chain head."""
    info = await client.get_chain_info()
    head = info.get("currentBlockIdentifier") if isinstance(info, Mapping) else None
    block_hash = _field(head, "hash")
    if not block_hash:
        raise RpcError(f"Chain info did not include a head block hash: {info!r}")
    return str(block_hash)


def _field(payload: Any, name: str) -> Any:
    if not isinstance(payload, Mapping):
        return None
    return payload.get(name)
