"""
Node configuration and the config file written into a node's data directory.

NodeConfig holds everything needed to start one simulated node. Before the
node process starts, its values are merged into ``<data_dir>/config.json``
together with overrides the simulator depends on (JSON logs, TCP RPC without
TLS, forced mining).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

import orjson

from nodesim.config import ConfigurationError
from nodesim.validation import find_missing_fields

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"

# Keys the simulator cannot run without; callers cannot override them.
FORCED_OVERRIDES: Mapping[str, Any] = {
    "jsonLogs": True,
    "enableRpc": True,
    "enableRpcTcp": True,
    "enableRpcTls": False,
    "miningForce": True,
}

VERBOSE_LOG_LEVEL = "*:verbose"

_FIELD_TO_CONFIG_KEY = {
    "node_name": "nodeName",
    "block_graffiti": "blockGraffiti",
    "peer_port": "peerPort",
    "network_id": "networkId",
    "rpc_tcp_host": "rpcTcpHost",
    "rpc_tcp_port": "rpcTcpPort",
    "bootstrap_nodes": "bootstrapNodes",
}

REQUIRED_FIELDS = tuple(_FIELD_TO_CONFIG_KEY) + ("data_dir",)


@dataclass(frozen=True)
class NodeConfig:
    """
    Configuration for a node in the simulation network.

    Attributes:
        node_name: Unique name of the node, also used to tag its events
        block_graffiti: Graffiti written into blocks the node mines
        peer_port: Port the node listens on for peers
        network_id: Identifier of the network to join
        rpc_tcp_host: Host of the node's TCP RPC listener
        rpc_tcp_port: Port of the node's TCP RPC listener
        bootstrap_nodes: Peers to connect to on startup
        data_dir: Directory holding the node's data and config file
        verbose: Turn on verbose logging in the node
        options: Extra node config keys (node naming) overriding defaults
    """

    node_name: str
    block_graffiti: str
    peer_port: int
    network_id: int
    rpc_tcp_host: str
    rpc_tcp_port: int
    bootstrap_nodes: Sequence[str]
    data_dir: str
    verbose: bool = False
    options: Mapping[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raise ConfigurationError unless every required field is usable."""
        values = {name: getattr(self, name) for name in REQUIRED_FIELDS}
        missing = find_missing_fields(values, REQUIRED_FIELDS, allow_empty=False)
        if missing:
            raise ConfigurationError.missing_value(", ".join(missing), f"node {self.node_name or '<unnamed>'}")

        for name in ("peer_port", "rpc_tcp_port"):
            port = getattr(self, name)
            if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
                raise ConfigurationError.invalid_port(name, port)

        if isinstance(self.bootstrap_nodes, str):
            raise ConfigurationError.invalid_value("bootstrap_nodes", self.bootstrap_nodes, "Expected a list of peers")

        clashing = sorted(set(self.options) & set(FORCED_OVERRIDES))
        if clashing:
            logger.warning("Ignoring options forced by the simulator for %s: %s", self.node_name, ", ".join(clashing))

    @property
    def config_path(self) -> Path:
        return Path(self.data_dir) / CONFIG_FILE_NAME

    def to_node_options(self) -> Dict[str, Any]:
        """Return the key/value document written into the node's config file."""
        options: Dict[str, Any] = {key: getattr(self, name) for name, key in _FIELD_TO_CONFIG_KEY.items()}
        options["bootstrapNodes"] = list(self.bootstrap_nodes)
        options.update(self.options)
        if self.verbose:
            options["logLevel"] = VERBOSE_LOG_LEVEL
        options.update(FORCED_OVERRIDES)
        return options


def _load_existing(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        existing = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as exc:
        raise ConfigurationError.load_failed("node config", str(path)) from exc
    if not isinstance(existing, dict):
        raise ConfigurationError.invalid_value(str(path), type(existing).__name__, "Expected a JSON object")
    return existing


def write_node_config(config: NodeConfig) -> Path:
    """
    Merge ``config`` into the node's config file and return its path.

    Keys already present in an existing file are kept unless the config
    sets them.
    """
    config.validate()
    path = config.config_path
    path.parent.mkdir(parents=True, exist_ok=True)

    merged = _load_existing(path)
    merged.update(config.to_node_options())

    path.write_bytes(orjson.dumps(merged, option=orjson.OPT_INDENT_2))
    logger.debug("Wrote node config for %s to %s", config.node_name, path)
    return path
