"""Conditional cleanup callable for a patch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .descriptors import has_own

if TYPE_CHECKING:
    from .patch import Patch, RevertReport

LOGGER = logging.getLogger(__name__)


class PatchCleaner:
    """Callable that reverts ``patch`` only while all of its keys are still present.

    Handy as an ``atexit`` hook or a test finalizer where the patch may already
    have been reverted by other code.
    """

    def __init__(self, patch: "Patch") -> None:
        self.patch = patch

    @staticmethod
    def needs_cleanup(patch: "Patch") -> bool:
        return all(has_own(patch.owner, key) for key in patch.patch_keys)

    def __call__(self, *_args: Any) -> "RevertReport | None":
        if not self.needs_cleanup(self.patch):
            LOGGER.debug("Skipping cleanup of %r; its keys are no longer present", self.patch)
            return None
        return self.patch.revert()


__all__ = ["PatchCleaner"]
