"""
Spawn and supervise the child processes belonging to one simulated node.

Every spawned process is tracked by role (``node`` or ``miner``), at most one
per role. Its stdout/stderr chunks, errors, and exit are bridged into the
node's EventBus. Errors of child processes are never raised into caller code:
they are cached as the process's last error and published as ErrorEvents, and
the following ExitEvent carries that last error.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Dict, List, Optional, Sequence, Tuple

from nodesim.events import EventBus
from nodesim.events.types import ErrorEvent, ExitEvent, OutputStream, ProcessRole
from nodesim.exceptions import (
    ProcessAlreadyRunningError,
    ProcessNotFoundError,
    ProcessSpawnError,
)

from .process_supervisor_helpers import ManagedProcess, pump_output, send_termination_signal

logger = logging.getLogger(__name__)

# How long to keep reading output after exit before giving up on the pipes.
OUTPUT_DRAIN_TIMEOUT_SECONDS = 2.0


def _split_returncode(returncode: Optional[int]) -> Tuple[Optional[int], Optional[str]]:
    """Map an asyncio return code to (exit code, signal name)."""
    if returncode is None or returncode >= 0:
        return returncode, None
    try:
        return None, signal.Signals(-returncode).name
    except ValueError:
        return None, str(-returncode)


class ProcessSupervisor:
    """Tracks the node's child processes and publishes their events."""

    def __init__(self, node_name: str, bus: EventBus):
        self.node_name = node_name
        self.bus = bus
        self.procs: Dict[ProcessRole, ManagedProcess] = {}
        self.last_error: Optional[BaseException] = None
        # Spawned processes whose ExitEvent is still outstanding, tracked or not.
        self._running: List[ManagedProcess] = []

    def is_tracked(self, role: ProcessRole) -> bool:
        return role in self.procs

    def has_running_processes(self) -> bool:
        """True while any spawned process has not yet published its ExitEvent."""
        return bool(self._running)

    async def spawn(self, role: ProcessRole, command: str, args: Sequence[str]) -> ManagedProcess:
        """
        Start ``command args`` and register it under ``role``.

        A spawn failure does not raise: it is published as an ErrorEvent carrying a
        ProcessSpawnError followed by an ExitEvent with no code.

        Raises:
            ProcessAlreadyRunningError: If a process is already tracked for ``role``
        """
        if role in self.procs:
            raise ProcessAlreadyRunningError(role=role)

        managed = ManagedProcess(role=role, command=command, args=tuple(args))
        self.procs[role] = managed
        self._running.append(managed)
        logger.debug("Spawning %s for %s: %s %s", role, self.node_name, command, " ".join(args))

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *managed.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            error = ProcessSpawnError(f"Failed to spawn {role} process {command!r}: {exc}", role=role, command=command)
            error.__cause__ = exc
            self._record_error(managed, error)
            self._handle_exit(managed, None)
            return managed

        managed.process = process
        managed.monitor_task = asyncio.create_task(self._monitor(managed, process), name=f"{self.node_name}:{role}:monitor")
        return managed

    def stop(self, role: ProcessRole) -> bool:
        """
        Send a termination signal to the process tracked for ``role`` and stop tracking it.

        Returns:
            Whether the signal was delivered

        Raises:
            ProcessNotFoundError: If no process is tracked for ``role``
        """
        managed = self.procs.pop(role, None)
        if managed is None:
            raise ProcessNotFoundError(role=role)
        return send_termination_signal(managed, node=self.node_name)

    def stop_all(self) -> Dict[ProcessRole, bool]:
        """Signal every tracked process and clear the tracked set, best-effort."""
        results: Dict[ProcessRole, bool] = {}
        tracked = list(self.procs.items())
        self.procs.clear()
        for role, managed in tracked:
            try:
                results[role] = send_termination_signal(managed, node=self.node_name)
            except OSError as exc:
                logger.warning("Failed to signal %s process for %s: %s", role, self.node_name, exc)
                results[role] = False
        return results

    def report_error(self, role: ProcessRole, error: BaseException) -> None:
        """
        Record a runtime error against the process tracked for ``role``.

        Raises:
            ProcessNotFoundError: If no process is tracked for ``role``
        """
        managed = self.procs.get(role)
        if managed is None:
            raise ProcessNotFoundError(role=role)
        self._record_error(managed, error)

    async def _monitor(self, managed: ManagedProcess, process: asyncio.subprocess.Process) -> None:
        pumps = [
            asyncio.create_task(self._pump(managed, process.stdout, "stdout")),
            asyncio.create_task(self._pump(managed, process.stderr, "stderr")),
        ]
        try:
            returncode = await process.wait()
            _, pending = await asyncio.wait(pumps, timeout=OUTPUT_DRAIN_TIMEOUT_SECONDS)
        except asyncio.CancelledError:
            for pump in pumps:
                pump.cancel()
            raise
        for pump in pending:
            logger.debug("Abandoning output pump for %s %s after exit", self.node_name, managed.role)
            pump.cancel()
        self._handle_exit(managed, returncode)

    async def _pump(self, managed: ManagedProcess, stream: Optional[asyncio.StreamReader], stream_type: OutputStream) -> None:
        if stream is None:
            return
        try:
            await pump_output(
                stream,
                node=self.node_name,
                proc=managed.role,
                stream_type=stream_type,
                emit=self.bus.on_log.emit,
            )
        except (OSError, ValueError) as exc:
            self._record_error(managed, exc)

    def _record_error(self, managed: ManagedProcess, error: BaseException) -> None:
        """Cache ``error`` before publishing it, so a later ExitEvent can carry it."""
        managed.last_error = error
        self.last_error = error
        self.bus.on_error.emit(ErrorEvent(node=self.node_name, proc=managed.role, error=error))

    def _handle_exit(self, managed: ManagedProcess, returncode: Optional[int]) -> None:
        if managed.exited:
            return
        managed.exited = True
        self._running = [proc for proc in self._running if proc is not managed]
        if self.procs.get(managed.role) is managed:
            del self.procs[managed.role]

        code, signal_name = _split_returncode(returncode)
        logger.debug("%s process for %s exited (code=%s, signal=%s)", managed.role, self.node_name, code, signal_name)
        self.bus.on_exit.emit(
            ExitEvent(
                node=self.node_name,
                proc=managed.role,
                code=code,
                signal=signal_name,
                last_err=managed.last_error,
            )
        )
