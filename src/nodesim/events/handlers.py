"""Default handlers installed when a caller supplies none."""

import logging
from typing import Callable, Union

from .types import ErrorEvent, ExitEvent

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


def default_on_exit(logger: LoggerLike) -> Callable[[ExitEvent], None]:
    """Log process exits; non-zero exits are logged as errors with the last error seen."""

    def _on_exit(event: ExitEvent) -> None:
        if event.code == 0:
            logger.info("[%s:%s] exited with code 0", event.node, event.proc)
            return
        logger.error(
            "[%s:%s] exited (code=%s, signal=%s, last error=%s)",
            event.node,
            event.proc,
            event.code,
            event.signal,
            event.last_err,
        )

    return _on_exit


def default_on_error(logger: LoggerLike) -> Callable[[ErrorEvent], None]:
    def _on_error(event: ErrorEvent) -> None:
        logger.error("[%s:%s] error: %s", event.node, event.proc, event.error)

    return _on_error
