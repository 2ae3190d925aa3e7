"""Shared configuration helpers."""

from .errors import ConfigurationError
from .runtime import env_float, env_int, env_str

__all__ = [
    "ConfigurationError",
    "env_float",
    "env_int",
    "env_str",
]
