"""
Configuration for RPC connection management.

Retry counts and intervals exist because a freshly spawned node needs a
variable amount of startup time before its RPC listener is bound. Values are
read from environment variables with defaults matching the node's typical
startup behaviour.
"""

from dataclasses import dataclass, field
from functools import partial

from nodesim.config import env_float, env_int

DEFAULT_NODE_BINARY = "ironfish"
DEFAULT_CONNECT_ATTEMPTS = 12
DEFAULT_CONNECT_INTERVAL_SECONDS = 0.25
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


@dataclass
class RpcConnectionConfig:
    """
    Connection settings for talking to a node over TCP RPC.

    Attributes:
        max_attempts: Number of connection attempts before giving up
        interval_seconds: Delay between two consecutive connection attempts
        request_timeout_seconds: Maximum time to wait for a non-streaming response
    """

    max_attempts: int = field(
        default_factory=partial(env_int, "NODESIM_RPC_CONNECT_ATTEMPTS", DEFAULT_CONNECT_ATTEMPTS, minimum=1)
    )
    interval_seconds: float = field(
        default_factory=partial(env_float, "NODESIM_RPC_CONNECT_INTERVAL_SECONDS", DEFAULT_CONNECT_INTERVAL_SECONDS, minimum=0.0)
    )
    request_timeout_seconds: float = field(
        default_factory=partial(env_float, "NODESIM_RPC_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS, minimum=0.0)
    )


def get_rpc_connection_config() -> RpcConnectionConfig:
    """Return a fresh connection config populated from the environment."""
    return RpcConnectionConfig()
