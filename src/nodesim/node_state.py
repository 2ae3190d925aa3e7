"""
Lifecycle states of a simulated node.

Created -> Connecting -> Ready -> Stopping -> Stopped, with Connecting -> Stopped
when the RPC connection cannot be established. A node may also reach Stopped from
any other state when its process exits on its own.
"""

from enum import Enum


class NodeState(Enum):
    """States a SimulationNode moves through."""

    CREATED = "created"
    CONNECTING = "connecting"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"


ALLOWED_TRANSITIONS = {
    NodeState.CREATED: {NodeState.CONNECTING, NodeState.STOPPED},
    NodeState.CONNECTING: {NodeState.READY, NodeState.STOPPING, NodeState.STOPPED},
    NodeState.READY: {NodeState.STOPPING, NodeState.STOPPED},
    NodeState.STOPPING: {NodeState.STOPPED},
    NodeState.STOPPED: set(),
}


def can_transition(current: NodeState, new_state: NodeState) -> bool:
    """Return True when ``current`` may move to ``new_state``."""
    return new_state in ALLOWED_TRANSITIONS[current]
