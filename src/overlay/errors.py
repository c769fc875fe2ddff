"""Exception types raised (or recorded) while building and applying patches."""

from __future__ import annotations

from typing import Any, Mapping

from .utils.naming import extract_name, format_key


class OverlayError(RuntimeError):
    """Base class for errors raised by the overlay engine."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class InvalidKeyError(OverlayError, TypeError):
    """Raised when a patch key is not a non-empty attribute name."""

    def __init__(self, key: Any) -> None:
        super().__init__(
            f"Property must be a non-empty string, got {key!r} (type: {type(key).__name__})",
            details={"key": key},
        )
        self.key = key


class InvalidOwnerError(OverlayError, TypeError):
    """Raised when an object cannot host attribute descriptors."""

    def __init__(self, owner: Any) -> None:
        super().__init__(
            f"Cannot patch {type(owner).__name__} objects; owner must be a class, "
            "module, mutable mapping or an object with a __dict__",
            details={"owner_type": type(owner).__name__},
        )
        self.owner = owner


class CannotBeExtended(OverlayError):
    """Raised when an existing attribute is read-only and may not be replaced."""

    def __init__(self, owner: Any, key: str) -> None:
        super().__init__(
            f"{extract_name(owner)} disallows tampering with {key}.",
            details={"owner": extract_name(owner), "key": key},
        )
        self.owner = owner
        self.key = key


class MissingOwnerValue(OverlayError):
    """Raised when no usable attribute name can be derived for an extension."""

    def __init__(self, owner: Any, key: Any) -> None:
        super().__init__(
            f"{extract_name(owner)} does not have a property named '{key}'.",
            details={"owner": extract_name(owner), "key": key},
        )
        self.owner = owner
        self.key = key


class PatchApplicationError(OverlayError):
    """Describes a single entry that could not be applied, reverted or restored.

    Instances are collected in apply/revert reports rather than raised.
    """

    def __init__(self, message: str, key: Any, *, cause: BaseException | None = None) -> None:
        details: dict[str, Any] = {"key": format_key(key)}
        if cause is not None:
            details["cause"] = f"{type(cause).__name__}: {cause}"
        super().__init__(message, details=details)
        self.key = key
        self.__cause__ = cause


__all__ = [
    "CannotBeExtended",
    "InvalidKeyError",
    "InvalidOwnerError",
    "MissingOwnerValue",
    "OverlayError",
    "PatchApplicationError",
]
