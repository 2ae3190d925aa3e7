"""Exception classes for the node orchestration layer.

All custom exceptions inherit from ApplicationError so callers can catch the
whole family at once.

Exception classes support two patterns:
1. No-argument raise: raise ProcessNotFoundError()
2. Contextual attributes: err = ProcessNotFoundError(role="miner"); raise err
"""

from typing import Any


class ApplicationError(Exception):
    """Base exception for all application errors.

    Supports keyword arguments that are stored as attributes for debugging.
    """

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = self.__class__.__doc__ or "Application error occurred"
        super().__init__(message)
        for key, value in kwargs.items():
            setattr(self, key, value)


class ProcessSpawnError(ApplicationError):
    """The operating system failed to create a child process."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Failed to spawn child process"
        super().__init__(message, **kwargs)


class ProcessNotFoundError(ApplicationError):
    """No process is tracked for the requested role."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            role = kwargs.get("role")
            message = f"{role} process not found" if role else "Process not found"
        super().__init__(message, **kwargs)


class ProcessAlreadyRunningError(ApplicationError):
    """A process is already tracked for the requested role."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            role = kwargs.get("role")
            message = f"{role} process is already running" if role else "Process is already running"
        super().__init__(message, **kwargs)


class ConnectionFailureError(ApplicationError):
    """RPC connection attempts were exhausted."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Failed to connect to node"
        super().__init__(message, **kwargs)


class StreamFailureError(ApplicationError):
    """The block stream ended or failed outside of a planned shutdown."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Block stream terminated unexpectedly"
        super().__init__(message, **kwargs)


class StopRpcFailureError(ApplicationError):
    """The RPC stop request failed."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Failed to request node shutdown"
        super().__init__(message, **kwargs)


class RpcError(ApplicationError):
    """The node answered an RPC request with an error status."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "RPC request failed"
        kwargs.setdefault("status", None)
        kwargs.setdefault("code", None)
        super().__init__(message, **kwargs)


class RpcConnectionClosedError(ApplicationError):
    """The RPC socket closed while a request was in flight."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "RPC connection closed"
        super().__init__(message, **kwargs)


class NodeNotReadyError(ApplicationError):
    """The node has not reached the ready state, or has already left it."""

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        if not message:
            message = "Node is not ready"
        super().__init__(message, **kwargs)


class BlockStreamAlreadyStartedError(RuntimeError):
    """Raised when a second block stream is requested for the same node."""


__all__ = [
    "ApplicationError",
    "BlockStreamAlreadyStartedError",
    "ConnectionFailureError",
    "NodeNotReadyError",
    "ProcessAlreadyRunningError",
    "ProcessNotFoundError",
    "ProcessSpawnError",
    "RpcConnectionClosedError",
    "RpcError",
    "StopRpcFailureError",
    "StreamFailureError",
]
