"""Descriptor templates applied to a whole group of patch keys."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class PatchMarker(Enum):
    """Visibility/mutability pair shared by every key inside a template.

    Use a member as a key of a patch definition; its value is either a
    mapping or a callable that receives a per-patch store and returns one.
    """

    MUTABLY_HIDDEN = (False, True)
    MUTABLY_VISIBLE = (True, True)
    IMMUTABLY_HIDDEN = (False, False)
    IMMUTABLY_VISIBLE = (True, False)

    @property
    def enumerable(self) -> bool:
        return self.value[0]

    @property
    def configurable(self) -> bool:
        return self.value[1]

    @property
    def overrides(self) -> Dict[str, Any]:
        """Descriptor fields forced onto every key of the template."""
        return {"enumerable": self.enumerable, "configurable": self.configurable}

    @classmethod
    def from_flags(cls, *, enumerable: bool, configurable: bool) -> "PatchMarker":
        return cls((enumerable, configurable))


def is_patch_marker(key: Any) -> bool:
    return isinstance(key, PatchMarker)


__all__ = ["PatchMarker", "is_patch_marker"]
