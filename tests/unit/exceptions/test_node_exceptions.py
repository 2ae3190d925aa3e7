"""Tests for the orchestration exception hierarchy."""

from __future__ import annotations

import pytest

from nodesim.exceptions import (
    ApplicationError,
    BlockStreamAlreadyStartedError,
    ConnectionFailureError,
    NodeNotReadyError,
    ProcessAlreadyRunningError,
    ProcessNotFoundError,
    ProcessSpawnError,
    RpcConnectionClosedError,
    RpcError,
    StopRpcFailureError,
    StreamFailureError,
)

APPLICATION_ERRORS = [
    ConnectionFailureError,
    NodeNotReadyError,
    ProcessAlreadyRunningError,
    ProcessNotFoundError,
    ProcessSpawnError,
    RpcConnectionClosedError,
    RpcError,
    StopRpcFailureError,
    StreamFailureError,
]


class TestApplicationErrors:
    """Tests for ApplicationError subclasses."""

    @pytest.mark.parametrize("error_cls", APPLICATION_ERRORS)
    def test_inherits_from_application_error(self, error_cls) -> None:
        """Every orchestration error can be caught as ApplicationError."""
        assert issubclass(error_cls, ApplicationError)

    @pytest.mark.parametrize("error_cls", APPLICATION_ERRORS)
    def test_has_default_message(self, error_cls) -> None:
        """Raising without arguments still produces a readable message."""
        assert str(error_cls())

    def test_kwargs_become_attributes(self) -> None:
        """Context passed as keyword arguments is kept on the instance."""
        error = ConnectionFailureError(host="127.0.0.1", port=9034, attempts=12)
        assert (error.host, error.port, error.attempts) == ("127.0.0.1", 9034, 12)

    def test_role_appears_in_process_messages(self) -> None:
        """Process errors name the role they refer to."""
        assert str(ProcessNotFoundError(role="miner")) == "miner process not found"
        assert str(ProcessAlreadyRunningError(role="node")) == "node process is already running"

    def test_rpc_error_defaults_status_and_code(self) -> None:
        """RpcError always exposes status and code."""
        error = RpcError("boom")
        assert error.status is None
        assert error.code is None

    def test_explicit_message_wins(self) -> None:
        """An explicit message replaces the default."""
        assert str(StopRpcFailureError("failed to connect to node n1")) == "failed to connect to node n1"


def test_block_stream_already_started_is_runtime_error() -> None:
    assert issubclass(BlockStreamAlreadyStartedError, RuntimeError)
    assert not issubclass(BlockStreamAlreadyStartedError, ApplicationError)
