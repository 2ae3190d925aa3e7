"""TCP RPC access to a running node."""

from .chain import get_latest_block_hash
from .client import RpcTcpClient
from .connector import connect, connect_with_retry

__all__ = ["RpcTcpClient", "connect", "connect_with_retry", "get_latest_block_hash"]
