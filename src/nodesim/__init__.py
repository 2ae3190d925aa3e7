"""Orchestration and liveness monitoring for simulated blockchain nodes."""

from .events import (
    Block,
    BlockStreamItem,
    ErrorEvent,
    EventBus,
    ExitEvent,
    LogEvent,
    Transaction,
)
from .node_config import NodeConfig, write_node_config
from .node_state import NodeState
from .simulation_node import SimulationNode, StopResult, stop_simulation_node

__all__ = [
    "Block",
    "BlockStreamItem",
    "ErrorEvent",
    "EventBus",
    "ExitEvent",
    "LogEvent",
    "NodeConfig",
    "NodeState",
    "SimulationNode",
    "StopResult",
    "Transaction",
    "stop_simulation_node",
    "write_node_config",
]
