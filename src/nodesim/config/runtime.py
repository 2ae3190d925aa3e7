from __future__ import annotations

"""Runtime helpers for reading simulator settings from the environment."""


import os
from typing import Callable, TypeVar

from .errors import ConfigurationError

NumberT = TypeVar("NumberT", int, float)


def env_str(
    name: str,
    or_value: str | None = None,
    *,
    required: bool = False,
    strip: bool = True,
    allow_blank: bool = False,
) -> str | None:
    """Fetch an environment variable as a string with validation."""

    value = os.getenv(name)
    if value is not None and strip:
        value = value.strip()

    if value is None or (not allow_blank and value == ""):
        if required:
            raise ConfigurationError(f"Required environment variable {name!r} is not set", field=name)
        return or_value
    return value


def _env_number(
    name: str,
    or_value: NumberT | None,
    convert: Callable[[str], NumberT],
    kind: str,
    minimum: NumberT | None,
) -> NumberT | None:
    raw = env_str(name)
    if raw is None:
        return or_value
    try:
        value = convert(raw)
    except ValueError as exc:
        raise ConfigurationError.invalid_value(name, raw, f"Expected {kind}") from exc
    if minimum is not None and value < minimum:
        raise ConfigurationError.invalid_value(name, raw, f"Must be at least {minimum}")
    return value


def env_int(name: str, or_value: int | None = None, *, minimum: int | None = None) -> int | None:
    """Fetch an environment variable as an ``int`` no smaller than ``minimum``."""
    return _env_number(name, or_value, int, "an integer", minimum)


def env_float(name: str, or_value: float | None = None, *, minimum: float | None = None) -> float | None:
    """Fetch an environment variable as a ``float`` no smaller than ``minimum``."""
    return _env_number(name, or_value, float, "a number", minimum)
