"""Helpers for the process supervisor."""

from .managed_process import ManagedProcess
from .output_reader import pump_output
from .process_terminator import send_termination_signal

__all__ = ["ManagedProcess", "pump_output", "send_termination_signal"]
