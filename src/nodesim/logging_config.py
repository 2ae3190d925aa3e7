"""
Centralized logging configuration for the simulator.

This module provides a single setup_logging function that configures
logging consistently with:
- Console output on stdout
- Optional file output to {log_dir}/{service_name}.log
- Fresh log file on each start unless LOG_APPEND=1

Nodes do not log through a global default logger. Each SimulationNode is
handed a base logger and wraps it with get_node_logger for its lifetime.
"""

import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

_config_lock = threading.Lock()
_MODULE_LOGGER = logging.getLogger(__name__)
_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class NodeLoggerAdapter(logging.LoggerAdapter):
    """Prefix every record with the node name."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['node']}] {msg}", kwargs


def get_node_logger(base: logging.Logger, node_name: str) -> NodeLoggerAdapter:
    """Return a logging handle tagged with ``node_name``."""
    return NodeLoggerAdapter(base, {"node": node_name})


def _close_handlers(logger: logging.Logger) -> None:
    """Close all handlers for a logger, logging any errors."""
    for handler in list(logger.handlers):
        try:
            handler.close()
        except OSError as e:  # Best-effort cleanup operation
            _MODULE_LOGGER.debug("Handler close failed: %s", e)


def _build_console_handler() -> logging.Handler:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    console_handler.setLevel(logging.DEBUG)
    return console_handler


def _configure_file_handler(service_name: Optional[str], log_dir: Optional[Path]) -> Optional[logging.Handler]:
    if not service_name or log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{service_name}.log"
    file_mode = "a" if os.getenv("LOG_APPEND") == "1" else "w"

    file_handler = logging.FileHandler(log_path, mode=file_mode)
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    file_handler.setLevel(logging.DEBUG)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def setup_logging(
    service_name: Optional[str] = None,
    *,
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
) -> None:
    """Configure logging for the application"""

    with _config_lock:
        root_logger = logging.getLogger()
        _close_handlers(root_logger)
        root_logger.handlers = []

        root_logger.addHandler(_build_console_handler())

        file_handler = _configure_file_handler(service_name, log_dir)
        if file_handler:
            root_logger.addHandler(file_handler)

        root_logger.setLevel(level)
        _suppress_noisy_third_parties()
