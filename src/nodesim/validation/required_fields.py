"""Helpers for checking that payloads and configs carry their required fields."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any


def find_missing_fields(payload: Mapping[str, Any], required_fields: Iterable[str], *, allow_empty: bool = True) -> list[str]:
    """
    Return the required field names absent from *payload*, sorted.

    With ``allow_empty=False`` a field set to None or an empty string counts as missing.
    """
    if not isinstance(payload, Mapping):
        raise TypeError(f"payload must be a Mapping, got {type(payload).__name__}")
    missing = []
    for name in required_fields:
        if name not in payload:
            missing.append(name)
        elif not allow_empty and payload[name] in (None, ""):
            missing.append(name)
    return sorted(missing)


__all__ = ["find_missing_fields"]
