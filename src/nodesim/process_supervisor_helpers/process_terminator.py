"""Deliver termination signals to managed processes."""

import logging

import psutil

from .managed_process import ManagedProcess

logger = logging.getLogger(__name__)


def send_termination_signal(managed: ManagedProcess, *, node: str) -> bool:
    """
    Send SIGTERM to ``managed``.

    Termination is advisory: success means the signal was delivered, not that
    the process has exited. The exit is reported by the process's own ExitEvent.

    Returns:
        True when the signal was delivered, False when the process was already
        gone or could not be signalled.
    """
    pid = managed.pid
    # A reaped child may still be draining output; its pid can already belong to another process.
    if pid is None or managed.exited or managed.returncode is not None:
        logger.debug("%s process for %s has no live pid; nothing to signal", managed.role, node)
        return False

    try:
        proc = psutil.Process(pid)
        proc.terminate()
    except psutil.NoSuchProcess:
        logger.debug("%s process %s for %s exited before termination", managed.role, pid, node)
        return False
    except psutil.AccessDenied:
        logger.warning("Access denied while terminating %s process %s for %s", managed.role, pid, node)
        return False

    logger.debug("Sent SIGTERM to %s process %s for %s", managed.role, pid, node)
    return True
