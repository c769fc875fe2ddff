"""Utilities for deriving human-friendly names for patch owners and keys."""

from __future__ import annotations

import types
from collections.abc import Mapping
from typing import Any

_UNKNOWN = "Unknown"


def extract_name(value: Any, fallback: str | None = None) -> str:
    """Return a readable label for ``value``.

    Strings are returned unchanged, classes and functions use their qualified
    name, modules their import name.  Instances fall back to the name of their
    class so ``Patch[Config instance]`` reads naturally in logs.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, types.ModuleType):
        return value.__name__
    if isinstance(value, type):
        return value.__qualname__
    if callable(value):
        name = getattr(value, "__qualname__", None) or getattr(value, "__name__", None)
        if isinstance(name, str) and name:
            return name
    if isinstance(value, Mapping):
        return type(value).__name__
    if value is not None:
        return f"{type(value).__qualname__} instance"
    return fallback or _UNKNOWN


def format_key(key: Any) -> str:
    """Render a patch key for messages; enum members use their member name."""
    name = getattr(key, "name", None)
    if not isinstance(key, str) and isinstance(name, str):
        return name
    return str(key)
