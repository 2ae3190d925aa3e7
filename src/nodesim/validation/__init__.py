"""Validation helpers."""

from .required_fields import find_missing_fields

__all__ = ["find_missing_fields"]
