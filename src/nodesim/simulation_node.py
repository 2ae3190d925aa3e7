"""
SimulationNode: one supervised node in a simulated network.

A SimulationNode owns the node process, an optional miner process, an RPC
client, the node's single block stream, and the EventBus its events are
published on. Construct it with ``await SimulationNode.init(...)``; on return
the node is ready for RPC calls.

The node process's exit is the authoritative "stopped" signal. Whatever causes
it (``stop()``, a crash, an external kill), the exit resolves the shutdown
signal, marks the node stopped, and cleans up the remaining child processes
and subscriptions.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Union

from nodesim.async_helpers import schedule_coroutine
from nodesim.block_stream import BlockStreamConsumer
from nodesim.config import env_str
from nodesim.confirmation_waiter import wait_for_transaction
from nodesim.events import EventBus, default_on_error, default_on_exit
from nodesim.events.types import Block, ErrorEvent, ExitEvent, LogEvent
from nodesim.exceptions import (
    ConnectionFailureError,
    NodeNotReadyError,
    RpcConnectionClosedError,
    RpcError,
    StopRpcFailureError,
    StreamFailureError,
)
from nodesim.logging_config import get_node_logger
from nodesim.node_config import NodeConfig, write_node_config
from nodesim.node_state import NodeState, can_transition
from nodesim.process_supervisor import ProcessSupervisor
from nodesim.process_supervisor_helpers import ManagedProcess
from nodesim.rpc import RpcTcpClient, connect_with_retry, get_latest_block_hash
from nodesim.rpc_config import DEFAULT_NODE_BINARY, RpcConnectionConfig, get_rpc_connection_config

logger = logging.getLogger(__name__)

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

# How long a failed initialization waits for the node process to exit after signalling it.
ABORT_EXIT_TIMEOUT_SECONDS = 5.0


def node_start_args(data_dir: str) -> List[str]:
    return ["start", "--datadir", data_dir]


def miner_start_args(data_dir: str) -> List[str]:
    return ["miners:start", "-t", "1", "--datadir", data_dir]


def resolve_node_binary(binary: Optional[str] = None) -> str:
    """Return ``binary`` or the configured node binary."""
    if binary:
        return binary
    return env_str("NODESIM_NODE_BINARY", DEFAULT_NODE_BINARY)


@dataclass(frozen=True)
class StopResult:
    success: bool
    msg: str


async def stop_simulation_node(
    config: NodeConfig,
    *,
    logger: Optional[LoggerLike] = None,
    request_timeout: Optional[float] = None,
) -> StopResult:
    """
    Ask the node reachable at ``config``'s RPC address to shut down.

    Uses a fresh RPC client, so it works without the SimulationNode object and
    after the node's own client has been invalidated. Failures are reported in
    the result, never raised: the node process's exit, not this response,
    confirms the stop.
    """
    log = logger if logger is not None else logging.getLogger(__name__)
    client = RpcTcpClient(config.rpc_tcp_host, config.rpc_tcp_port, request_timeout=request_timeout)

    if not await client.try_connect():
        log.warning("error creating client to connect to node %s", config.node_name)
        error = StopRpcFailureError(f"failed to connect to node {config.node_name}")
        return StopResult(success=False, msg=str(error))

    try:
        await client.stop_node()
    except (RpcError, RpcConnectionClosedError, OSError, asyncio.TimeoutError) as exc:
        error = StopRpcFailureError(str(exc) or type(exc).__name__)
        log.warning("stop request to node %s failed: %s", config.node_name, error)
        return StopResult(success=False, msg=str(error))
    finally:
        await client.close()

    return StopResult(success=True, msg="")


class SimulationNode:
    """
    Wrapper around a node binary for use in a simulation network.

    Use the ``init()`` coroutine to construct a SimulationNode.
    """

    def __init__(
        self,
        config: NodeConfig,
        client: RpcTcpClient,
        logger: LoggerLike,
        *,
        on_log: Iterable[Callable[[LogEvent], object]] = (),
        on_exit: Iterable[Callable[[ExitEvent], object]] = (),
        on_error: Iterable[Callable[[ErrorEvent], object]] = (),
        binary: Optional[str] = None,
        rpc_config: Optional[RpcConnectionConfig] = None,
    ):
        self.config = config
        self.client = client
        self.logger = get_node_logger(logger, config.node_name)
        self.binary = resolve_node_binary(binary)
        self.rpc_config = rpc_config or get_rpc_connection_config()
        self.state = NodeState.CREATED

        self.bus = EventBus()
        for handler in on_log:
            self.bus.on_log.subscribe(handler)
        for handler in on_exit:
            self.bus.on_exit.subscribe(handler)
        for handler in on_error:
            self.bus.on_error.subscribe(handler)
        self.bus.on_exit.subscribe(self._on_process_exit)

        self.supervisor = ProcessSupervisor(config.node_name, self.bus)
        self.block_stream = BlockStreamConsumer(
            config.node_name,
            client,
            self.bus,
            on_failure=self._on_stream_failure,
            is_shutting_down=lambda: self.state in (NodeState.STOPPING, NodeState.STOPPED),
        )
        self._shutdown = asyncio.Event()

    @classmethod
    async def init(
        cls,
        config: NodeConfig,
        logger: LoggerLike,
        *,
        on_log: Optional[Iterable[Callable[[LogEvent], object]]] = None,
        on_exit: Optional[Iterable[Callable[[ExitEvent], object]]] = None,
        on_error: Optional[Iterable[Callable[[ErrorEvent], object]]] = None,
        binary: Optional[str] = None,
        rpc_config: Optional[RpcConnectionConfig] = None,
    ) -> "SimulationNode":
        """
        Start a node and return it once it is ready for RPC calls.

        Writes the node's config file, starts the node process, connects the RPC
        client with bounded retry, and starts the block stream at the current
        chain head. Exit and error handlers default to logging through ``logger``.

        Raises:
            ConfigurationError: If ``config`` is incomplete
            ConnectionFailureError: If the RPC connection could not be established
            RpcError: If the chain head could not be read
        """
        config.validate()
        rpc_config = rpc_config or get_rpc_connection_config()
        if on_exit is None:
            on_exit = [default_on_exit(logger)]
        if on_error is None:
            on_error = [default_on_error(logger)]

        write_node_config(config)

        client = RpcTcpClient(config.rpc_tcp_host, config.rpc_tcp_port, request_timeout=rpc_config.request_timeout_seconds)
        node = cls(
            config,
            client,
            logger,
            on_log=on_log or (),
            on_exit=on_exit,
            on_error=on_error,
            binary=binary,
            rpc_config=rpc_config,
        )
        await node.start()
        return node

    async def start(self) -> None:
        """Start the node process, connect, and begin following the chain."""
        if self.state is not NodeState.CREATED:
            raise NodeNotReadyError(f"node {self.config.node_name} was already started ({self.state.value})")

        self._transition(NodeState.CONNECTING)
        await self.supervisor.spawn("node", self.binary, node_start_args(self.config.data_dir))
        if self.stopped:
            error = ConnectionFailureError(
                f"node {self.config.node_name} exited before its RPC listener came up",
                host=self.config.rpc_tcp_host,
                port=self.config.rpc_tcp_port,
            )
            raise error from self.last_error
        self.logger.info("started node: %s", self.config.node_name)

        try:
            await connect_with_retry(
                self.client,
                max_attempts=self.rpc_config.max_attempts,
                interval=self.rpc_config.interval_seconds,
            )
            head = await get_latest_block_hash(self.client)
        except (ConnectionFailureError, RpcError, RpcConnectionClosedError, asyncio.TimeoutError) as exc:
            self.logger.error("failed to initialize node: %s", exc)
            await self._abort_initialization()
            raise

        if self.state is not NodeState.CONNECTING:
            await self._abort_initialization()
            raise ConnectionFailureError(
                f"node {self.config.node_name} exited during initialization",
                host=self.config.rpc_tcp_host,
                port=self.config.rpc_tcp_port,
            )

        self.block_stream.start(head)
        self._transition(NodeState.READY)

    @property
    def ready(self) -> bool:
        return self.state is NodeState.READY

    @property
    def stopped(self) -> bool:
        return self.state is NodeState.STOPPED

    @property
    def healthy(self) -> bool:
        """Ready with a live block stream."""
        return self.ready and self.block_stream.failure is None

    @property
    def last_error(self) -> Optional[BaseException]:
        """The last error encountered by the node's processes, useful after a crash."""
        return self.supervisor.last_error

    @property
    def procs(self) -> Dict[str, ManagedProcess]:
        return dict(self.supervisor.procs)

    async def start_miner(self) -> bool:
        """Start a miner attached to this node; returns False if one is already running."""
        if self.supervisor.is_tracked("miner"):
            return False
        self.logger.info("attaching miner to %s...", self.config.node_name)
        await self.supervisor.spawn("miner", self.binary, miner_start_args(self.config.data_dir))
        return True

    def stop_miner(self) -> bool:
        """
        Stop and detach the miner process.

        Returns:
            Whether the termination signal was delivered

        Raises:
            ProcessNotFoundError: If no miner is running
        """
        self.logger.info("detaching miner from %s...", self.config.node_name)
        return self.supervisor.stop("miner")

    async def wait_for_transaction_confirmation(
        self,
        transaction_hash: str,
        expiration_sequence: Optional[int] = None,
    ) -> Optional[Block]:
        """
        Wait for ``transaction_hash`` to be mined and return its block.

        Returns None once a block at ``expiration_sequence`` connects without
        the transaction. Without an expiration this waits indefinitely.
        """
        if not self.ready:
            raise NodeNotReadyError(f"node {self.config.node_name} is {self.state.value}")
        return await wait_for_transaction(self.bus.on_block, transaction_hash, expiration_sequence)

    async def wait_for_shutdown(self) -> None:
        """Wait until the node process has exited."""
        await self._shutdown.wait()

    async def stop(self) -> StopResult:
        """
        Request a graceful shutdown of the node.

        The result reflects the RPC request only; ``wait_for_shutdown`` confirms
        the process actually exited. Stopping a stopped node succeeds without
        doing anything.
        """
        if self.state is NodeState.STOPPED:
            return StopResult(success=True, msg="")

        self.logger.info("killing node %s...", self.config.node_name)
        self._transition(NodeState.STOPPING)
        return await stop_simulation_node(
            self.config,
            logger=self.logger,
            request_timeout=self.rpc_config.request_timeout_seconds,
        )

    def _transition(self, new_state: NodeState) -> None:
        if self.state is new_state:
            return
        if not can_transition(self.state, new_state):
            self.logger.warning("ignoring state change %s -> %s", self.state.value, new_state.value)
            return
        self.logger.debug("state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def _on_process_exit(self, event: ExitEvent) -> None:
        if event.proc == "node":
            self._shutdown.set()
            self._transition(NodeState.STOPPED)
            self._cleanup()
        if self.stopped and not self.supervisor.has_running_processes():
            self.bus.on_exit.clear()

    def _on_stream_failure(self, failure: StreamFailureError) -> None:
        if self.supervisor.is_tracked("node"):
            self.supervisor.report_error("node", failure)
        else:
            self.bus.on_error.emit(ErrorEvent(node=self.config.node_name, proc="node", error=failure))

    def _cleanup(self) -> None:
        """
        Kill remaining child processes and drop subscriptions. Safe to call repeatedly.

        Exit handlers stay subscribed until every child has published its
        ExitEvent; ``_on_process_exit`` clears them after the last one.
        """
        self.logger.info("cleaning up %s...", self.config.node_name)
        for role, delivered in self.supervisor.stop_all().items():
            if not delivered:
                self.logger.debug("%s process was already gone during cleanup", role)
        self.bus.on_log.clear()
        self.bus.on_error.clear()
        self.bus.on_block.clear()
        schedule_coroutine(self._close_rpc(), name=f"{self.config.node_name}:close-rpc")

    async def _close_rpc(self) -> None:
        await self.block_stream.stop()
        await self.client.close()

    async def _abort_initialization(self) -> None:
        self._transition(NodeState.STOPPED)
        self.supervisor.stop_all()
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=ABORT_EXIT_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            self.logger.warning("node process did not exit after failed initialization")
            self._shutdown.set()
            self._cleanup()
