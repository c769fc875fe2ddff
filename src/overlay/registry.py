"""Owner to patch bookkeeping and the flattened aggregation views.

``PatchRegistry`` remembers every patch constructed for an owner, in
construction order, until the patch is released.  Registries are plain
objects so tests and embedding applications can inject their own; the
process-wide ``DEFAULT_REGISTRY`` is only the fallback used by ``Patch``.

The aggregation helpers fold every patch registered for one owner into a
single ``PatchView``:

``applied``  entries currently live on the owner
``known``    every entry, live or not
``use``      key -> callable running a function with the patch temporarily applied
``lazy``     key -> accessor applying the patch on first read

When two patches define the same key the later-registered patch wins.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterator, List

from .descriptors import AccessorDescriptor, define_property

if TYPE_CHECKING:
    from .config import OverlaySettings
    from .entry import PatchEntry
    from .patch import Patch
    from .toggle import PatchToggle

LOGGER = logging.getLogger(__name__)


class ViewKind(str, Enum):
    """Aggregation surfaces available for an owner."""

    APPLIED = "applied"
    KNOWN = "known"
    USE = "use"
    LAZY = "lazy"


class PatchView(dict):
    """Flattened surface over patch entries.

    Values are reachable by item or attribute access.  Accessor entries are
    stored as ``property`` objects and resolved on read, so a view built from
    bound accessors keeps reading through to the real owner.
    """

    def __getitem__(self, key: Any) -> Any:
        raw = super().__getitem__(key)
        if isinstance(raw, property):
            if raw.fget is None:
                raise AttributeError(f"View entry {key!r} has no getter")
            return raw.fget(self)
        return raw

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def get(self, key: Any, default: Any = None) -> Any:
        if key not in self:
            return default
        return self[key]

    def resolved(self) -> Dict[Any, Any]:
        """Snapshot of every key with accessors evaluated."""
        return {key: self[key] for key in self}


@dataclass(slots=True)
class _OwnerSlot:
    owner: Any
    patches: List["Patch"] = field(default_factory=list)


class PatchRegistry:
    """Ordered owner -> patches map keyed by owner identity."""

    def __init__(self, *, telemetry: bool = True) -> None:
        self.telemetry = telemetry
        self._slots: Dict[int, _OwnerSlot] = {}

    @classmethod
    def from_settings(cls, settings: "OverlaySettings") -> "PatchRegistry":
        return cls(telemetry=settings.telemetry)

    def configure(self, settings: "OverlaySettings") -> None:
        """Apply runtime settings to an existing registry."""
        self.telemetry = settings.telemetry

    def register(self, patch: "Patch") -> None:
        owner = patch.owner
        slot = self._slots.get(id(owner))
        if slot is None or slot.owner is not owner:
            slot = _OwnerSlot(owner=owner)
            self._slots[id(owner)] = slot
        slot.patches.append(patch)

    def release(self, patch: "Patch") -> bool:
        """Forget ``patch``; returns ``False`` when it was not registered."""
        slot = self._slots.get(id(patch.owner))
        if slot is None or slot.owner is not patch.owner:
            return False
        for index, candidate in enumerate(slot.patches):
            if candidate is patch:
                del slot.patches[index]
                break
        else:
            return False
        if not slot.patches:
            del self._slots[id(patch.owner)]
        return True

    def patches_for(self, owner: Any) -> List["Patch"]:
        slot = self._slots.get(id(owner))
        if slot is None or slot.owner is not owner:
            return []
        return list(slot.patches)

    def owners(self) -> List[Any]:
        return [slot.owner for slot in self._slots.values()]

    def all_patches(self) -> List["Patch"]:
        return [patch for slot in self._slots.values() for patch in slot.patches]

    def clear(self) -> None:
        self._slots.clear()

    def __contains__(self, owner: Any) -> bool:
        slot = self._slots.get(id(owner))
        return slot is not None and slot.owner is owner

    def __len__(self) -> int:
        return sum(len(slot.patches) for slot in self._slots.values())

    def __iter__(self) -> Iterator["Patch"]:
        return iter(self.all_patches())

    def aggregate(self, owner: Any, kind: ViewKind | str) -> PatchView:
        return aggregate(self, owner, kind)

    def scoped_to(self, owner: Any) -> "ScopedViews":
        return ScopedViews(self, owner)


class ScopedViews:
    """The four aggregation views for one owner."""

    def __init__(self, registry: PatchRegistry, owner: Any) -> None:
        self.registry = registry
        self.owner = owner

    @property
    def applied(self) -> PatchView:
        return aggregate(self.registry, self.owner, ViewKind.APPLIED)

    @property
    def known(self) -> PatchView:
        return aggregate(self.registry, self.owner, ViewKind.KNOWN)

    @property
    def use(self) -> PatchView:
        return aggregate(self.registry, self.owner, ViewKind.USE)

    @property
    def lazy(self) -> PatchView:
        return aggregate(self.registry, self.owner, ViewKind.LAZY)


DEFAULT_REGISTRY = PatchRegistry()


UseCallback = Callable[[Callable[..., Any]], Any]


def _use_callback(patch: "Patch", entry: "PatchEntry") -> UseCallback:
    def use(fn: Callable[..., Any]) -> Any:
        if not callable(fn):
            return None
        toggle = patch.create_toggle().start()
        handed_off = False
        try:
            result = fn(entry.computed, entry)
            if inspect.isawaitable(result):
                # The toggle stays started until the awaitable finishes.
                handed_off = True
                return _await_then_stop(toggle, result)
            return result
        finally:
            if not handed_off:
                toggle.stop()

    use.__name__ = f"use_{entry.key}"
    return use


async def _await_then_stop(toggle: "PatchToggle", awaitable: Awaitable[Any]) -> Any:
    try:
        return await awaitable
    finally:
        toggle.stop()


def _lazy_getter(patch: "Patch", entry: "PatchEntry") -> Callable[[Any], Any]:
    def lazy(_view: Any) -> Any:
        if not patch.applied:
            LOGGER.debug("Lazily applying %r on first read of %s", patch, entry.key)
            patch.apply()
        return entry.computed

    lazy.__name__ = f"lazy_{entry.key}"
    return lazy


def aggregate(registry: PatchRegistry, owner: Any, kind: ViewKind | str) -> PatchView:
    """Fold every patch registered for ``owner`` into one ``PatchView``."""
    kind = ViewKind(kind)
    view = PatchView()
    for patch in registry.patches_for(owner):
        for key, entry in patch.entries:
            if kind is ViewKind.APPLIED and patch.patch_state.get(entry) is not True:
                continue
            # Later patches replace earlier ones regardless of their flags.
            view.pop(key, None)
            if kind is ViewKind.USE:
                view[key] = _use_callback(patch, entry)
            elif kind is ViewKind.LAZY:
                define_property(view, key, AccessorDescriptor(get=_lazy_getter(patch, entry)))
            else:
                entry.apply_to(view, bind_accessors=True)
    return view


__all__ = [
    "DEFAULT_REGISTRY",
    "PatchRegistry",
    "PatchView",
    "ScopedViews",
    "ViewKind",
    "aggregate",
]
