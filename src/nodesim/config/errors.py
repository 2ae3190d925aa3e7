from __future__ import annotations

"""Exception types for node and runtime configuration."""

from typing import Any, Optional


class ConfigurationError(RuntimeError):
    """Raised when configuration values are missing or malformed."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    @classmethod
    def missing_value(cls, param_name: str, context: str = "") -> "ConfigurationError":
        """Create error for missing value."""
        msg = f"{param_name} is missing or empty"
        if context:
            msg += f": {context}"
        return cls(msg, field=param_name)

    @classmethod
    def invalid_value(cls, param_name: str, value: Any, reason: str = "") -> "ConfigurationError":
        """Create error for invalid value."""
        msg = f"Invalid value for {param_name}: {value!r}"
        if reason:
            msg += f". {reason}"
        return cls(msg, field=param_name)

    @classmethod
    def invalid_port(cls, param_name: str, value: Any) -> "ConfigurationError":
        return cls.invalid_value(param_name, value, "Expected a port between 1 and 65535")

    @classmethod
    def load_failed(cls, resource: str, path: str = "") -> "ConfigurationError":
        """Create error for a config file that exists but cannot be read."""
        msg = f"Failed to load {resource}"
        if path:
            msg += f" from {path}"
        return cls(msg)


__all__ = ["ConfigurationError"]
