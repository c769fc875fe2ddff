"""Scoped start/stop activation of a single patch."""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Optional, Type

from .utils.naming import extract_name

if TYPE_CHECKING:
    from .patch import Patch


@dataclass(slots=True)
class ToggleState:
    """Flags captured when a toggle starts."""

    needs_application: bool = False
    needs_reversion: bool = False


class PatchToggle:
    """Apply a patch for the duration of a unit of work.

    A toggle only undoes what it caused: if the patch was already applied when
    ``start()`` ran, ``stop()`` leaves it applied.  Nested toggles over the same
    patch are therefore safe: when the toggle that applied the patch stops while
    another toggle is still running, the running toggle inherits the reversion.
    """

    def __init__(self, patch: "Patch", prevent_revert: bool = False) -> None:
        self.patch = patch
        self.prevent_revert = prevent_revert
        self.started = False
        self.state = ToggleState()
        self.patch_name = patch.owner_display_name or extract_name(patch.owner)

    def start(self) -> "PatchToggle":
        if self.started:
            return self

        already_applied = self.patch.applied
        self.state = ToggleState(
            needs_application=not already_applied,
            needs_reversion=already_applied,
        )
        self.started = True
        self.patch.active_toggles.append(self)
        if self.state.needs_application:
            self.patch.apply()
        return self

    def stop(self) -> "PatchToggle":
        """Undo the application this toggle owns.

        Nothing happens when the patch was already applied at ``start()``
        (``needs_reversion``) or when ``prevent_revert`` is set.  Otherwise the
        reversion passes to the newest running toggle that may revert; only
        when no such toggle remains is the patch reverted right away.
        """
        if not self.started:
            return self

        active = self.patch.active_toggles
        if self in active:
            active.remove(self)
        owns_reversion = self.state.needs_application and not self.state.needs_reversion
        if owns_reversion and not self.prevent_revert:
            heir = next((toggle for toggle in reversed(active) if not toggle.prevent_revert), None)
            if heir is not None:
                heir.state = ToggleState(needs_application=True, needs_reversion=False)
            else:
                self.patch.revert()
        self.state = ToggleState()
        self.started = False
        return self

    def __enter__(self) -> "PatchToggle":
        return self.start()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.stop()

    def __repr__(self) -> str:
        return (
            f"PatchToggle:{self.patch_name} "
            f"(started: {self.started} needed: {self.state.needs_application})"
        )


__all__ = ["PatchToggle", "ToggleState"]
