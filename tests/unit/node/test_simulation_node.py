import asyncio
import json
import logging
import sys

import pytest

from nodesim import NodeConfig, NodeState, SimulationNode, stop_simulation_node
from nodesim.exceptions import ConnectionFailureError, NodeNotReadyError, ProcessNotFoundError, StreamFailureError
from nodesim.rpc_config import RpcConnectionConfig

logger = logging.getLogger("nodesim.tests.simulation")

FAST_RPC = RpcConnectionConfig(max_attempts=50, interval_seconds=0.1, request_timeout_seconds=5)


def _config(tmp_path, port, name="node1"):
    return NodeConfig(
        node_name=name,
        block_graffiti=name,
        peer_port=9033,
        network_id=2,
        rpc_tcp_host="127.0.0.1",
        rpc_tcp_port=port,
        bootstrap_nodes=[],
        data_dir=str(tmp_path / name),
    )


class Events:
    def __init__(self):
        self.logs = []
        self.errors = []
        self.exits = []

    def handlers(self):
        return dict(on_log=[self.logs.append], on_error=[self.errors.append], on_exit=[self.exits.append])


async def _stop_and_wait(node):
    result = await node.stop()
    await asyncio.wait_for(node.wait_for_shutdown(), timeout=10)
    return result


@pytest.mark.asyncio
async def test_init_starts_node_and_stop_shuts_it_down(tmp_path, free_port, fake_node_binary):
    events = Events()
    node = await SimulationNode.init(
        _config(tmp_path, free_port), logger, binary=fake_node_binary, rpc_config=FAST_RPC, **events.handlers()
    )

    assert node.ready
    assert node.healthy
    assert set(node.procs) == {"node"}
    written = json.loads((tmp_path / "node1" / "config.json").read_text())
    assert written["rpcTcpPort"] == free_port

    result = await _stop_and_wait(node)

    assert result.success
    assert result.msg == ""
    assert node.stopped
    assert node.state is NodeState.STOPPED
    assert node.procs == {}
    (exit_event,) = events.exits
    assert (exit_event.proc, exit_event.code) == ("node", 0)
    assert any(e.json_message is not None and e.json_message.message == "rpc listening" for e in events.logs)
    assert any(e.type == "stderr" and "shutting down" in e.message for e in events.logs)
    assert events.errors == []


@pytest.mark.asyncio
async def test_second_stop_is_a_successful_no_op(tmp_path, free_port, fake_node_binary):
    node = await SimulationNode.init(_config(tmp_path, free_port), logger, binary=fake_node_binary, rpc_config=FAST_RPC)
    await _stop_and_wait(node)

    result = await node.stop()

    assert result.success
    await asyncio.wait_for(node.wait_for_shutdown(), timeout=1)


@pytest.mark.asyncio
async def test_transaction_confirmation_from_block_stream(tmp_path, free_port, fake_node_binary, make_block_item):
    config = _config(tmp_path, free_port)
    (tmp_path / "node1").mkdir()
    blocks = [make_block_item(2), make_block_item(3, "ABCD"), make_block_item(4)]
    (tmp_path / "node1" / "blocks.json").write_text(json.dumps(blocks))

    node = await SimulationNode.init(config, logger, binary=fake_node_binary, rpc_config=FAST_RPC)
    try:
        confirmed = asyncio.create_task(node.wait_for_transaction_confirmation("abcd"))
        expired = asyncio.create_task(node.wait_for_transaction_confirmation("missing", expiration_sequence=4))

        block = await asyncio.wait_for(confirmed, timeout=10)
        assert block.sequence == 3
        assert await asyncio.wait_for(expired, timeout=10) is None
    finally:
        await _stop_and_wait(node)


@pytest.mark.asyncio
async def test_miner_can_be_attached_and_detached(tmp_path, free_port, fake_node_binary):
    events = Events()
    node = await SimulationNode.init(
        _config(tmp_path, free_port), logger, binary=fake_node_binary, rpc_config=FAST_RPC, **events.handlers()
    )
    try:
        assert await node.start_miner() is True
        assert await node.start_miner() is False
        assert set(node.procs) == {"node", "miner"}

        for _ in range(100):
            if any(e.proc == "miner" for e in events.logs):
                break
            await asyncio.sleep(0.05)
        assert node.stop_miner() is True
        for _ in range(100):
            if any(e.proc == "miner" for e in events.exits):
                break
            await asyncio.sleep(0.05)

        miner_exit = next(e for e in events.exits if e.proc == "miner")
        assert miner_exit.code == 0
        assert node.ready
        with pytest.raises(ProcessNotFoundError):
            node.stop_miner()
    finally:
        await _stop_and_wait(node)


async def _wait_until(predicate, timeout=10.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_node_exit_stops_the_miner_and_reports_both_exits(tmp_path, free_port, fake_node_binary):
    events = Events()
    node = await SimulationNode.init(
        _config(tmp_path, free_port), logger, binary=fake_node_binary, rpc_config=FAST_RPC, **events.handlers()
    )
    await node.start_miner()
    await _wait_until(lambda: any(e.proc == "miner" for e in events.logs))
    miner_process = node.procs["miner"].process

    node.procs["node"].process.kill()
    await asyncio.wait_for(node.wait_for_shutdown(), timeout=10)
    await asyncio.wait_for(miner_process.wait(), timeout=10)
    await _wait_until(lambda: len(events.exits) == 2)

    assert node.procs == {}
    node_exit, miner_exit = events.exits
    assert (node_exit.proc, node_exit.signal) == ("node", "SIGKILL")
    assert (miner_exit.proc, miner_exit.code) == ("miner", 0)
    assert node.bus.on_exit.subscriber_count() == 0


@pytest.mark.asyncio
async def test_init_fails_when_node_exits_before_listening(tmp_path, free_port):
    events = Events()
    config = _config(tmp_path, free_port)

    with pytest.raises(ConnectionFailureError):
        await SimulationNode.init(
            config,
            logger,
            binary=sys.executable,
            rpc_config=RpcConnectionConfig(max_attempts=5, interval_seconds=0.1, request_timeout_seconds=1),
            **events.handlers(),
        )

    assert events.exits
    assert events.exits[0].proc == "node"


@pytest.mark.asyncio
async def test_init_fails_when_binary_is_missing(tmp_path, free_port):
    events = Events()

    with pytest.raises(ConnectionFailureError):
        await SimulationNode.init(
            _config(tmp_path, free_port),
            logger,
            binary=str(tmp_path / "no-such-binary"),
            rpc_config=FAST_RPC,
            **events.handlers(),
        )

    assert len(events.errors) == 1
    assert events.exits[0].code is None


@pytest.mark.asyncio
async def test_waiting_for_confirmation_requires_ready_node(tmp_path, free_port):
    node = SimulationNode(_config(tmp_path, free_port), client=None, logger=logger, binary="unused")

    with pytest.raises(NodeNotReadyError):
        await node.wait_for_transaction_confirmation("tx")


@pytest.mark.asyncio
async def test_stop_simulation_node_reports_rpc_error(tmp_path, rpc_server):
    rpc_server.stop_status = 500
    config = _config(tmp_path, rpc_server.port)

    result = await stop_simulation_node(config, logger=logger)

    assert not result.success
    assert "cannot stop" in result.msg
    assert rpc_server.requests == [("node/stopNode", None)]


@pytest.mark.asyncio
async def test_stop_simulation_node_without_listener(tmp_path, free_port):
    result = await stop_simulation_node(_config(tmp_path, free_port))

    assert not result.success
    assert result.msg == "failed to connect to node node1"


@pytest.mark.asyncio
async def test_stop_simulation_node_success(tmp_path, rpc_server):
    result = await stop_simulation_node(_config(tmp_path, rpc_server.port))
    assert result.success


@pytest.fixture
def idle_binary(tmp_path):
    """Node binary that ignores its arguments and sleeps; RPC is served by ``rpc_server``."""
    binary = tmp_path / "idle-node"
    binary.write_text(f"#!{sys.executable}\nimport time\ntime.sleep(60)\n")
    binary.chmod(0o755)
    return str(binary)


async def _init_against_server(tmp_path, rpc_server, idle_binary, events):
    node = await SimulationNode.init(
        _config(tmp_path, rpc_server.port),
        logger,
        binary=idle_binary,
        rpc_config=FAST_RPC,
        **events.handlers(),
    )
    await _wait_until(lambda: ("chain/followChainStream", {"head": "00ab"}) in rpc_server.requests)
    return node


@pytest.mark.asyncio
async def test_stream_failure_while_ready_marks_node_unhealthy(tmp_path, rpc_server, idle_binary):
    events = Events()
    node = await _init_against_server(tmp_path, rpc_server, idle_binary, events)
    assert node.healthy

    rpc_server.drop_connections()
    await _wait_until(lambda: events.errors)

    assert isinstance(events.errors[0].error, StreamFailureError)
    assert events.errors[0].proc == "node"
    assert node.ready
    assert not node.healthy
    assert isinstance(node.last_error, StreamFailureError)

    node.supervisor.stop("node")
    await asyncio.wait_for(node.wait_for_shutdown(), timeout=10)

    (exit_event,) = events.exits
    assert exit_event.signal == "SIGTERM"
    assert isinstance(exit_event.last_err, StreamFailureError)


@pytest.mark.asyncio
async def test_stream_end_while_stopping_is_not_reported(tmp_path, rpc_server, idle_binary):
    events = Events()
    node = await _init_against_server(tmp_path, rpc_server, idle_binary, events)

    result = await node.stop()
    assert result.success
    assert node.state is NodeState.STOPPING
    rpc_server.push_block(None)
    await _wait_until(lambda: not node.block_stream.active)

    assert events.errors == []
    assert node.block_stream.failure is None

    node.supervisor.stop("node")
    await asyncio.wait_for(node.wait_for_shutdown(), timeout=10)
    assert events.exits[0].last_err is None


@pytest.mark.asyncio
async def test_stream_failure_after_node_untracked_is_still_published(tmp_path, free_port):
    events = Events()
    node = SimulationNode(_config(tmp_path, free_port), client=None, logger=logger, binary="unused", **events.handlers())
    failure = StreamFailureError("Block stream for node1 ended unexpectedly", node="node1")

    node._on_stream_failure(failure)

    (error_event,) = events.errors
    assert error_event.error is failure
    assert (error_event.node, error_event.proc) == ("node1", "node")
