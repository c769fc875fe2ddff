"""Reversible attribute overlays for live objects.

A ``Patch`` takes an owner (class, module, instance or mutable mapping) and a
definition of attributes to introduce.  It snapshots every defined key as a
``PatchEntry`` and captures any attribute the owner already has for the same
key so ``revert()`` can restore it exactly.

``apply()`` and ``revert()`` never raise for a single misbehaving key: each
write is read back and compared with the requested descriptor, and problems
are collected in the returned report instead.  Callers that need strict
guarantees inspect the report counts.
"""

from __future__ import annotations

import builtins
import json
import logging
import weakref
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Tuple

from .config import PatchOptions, coerce_options
from .descriptors import (
    Descriptor,
    define_property,
    delete_property,
    equal_descriptors,
    get_own_descriptor,
    has_own,
    host_kind,
    require_host,
    spec_keys,
)
from .entry import PatchEntry
from .errors import OverlayError, PatchApplicationError
from .markers import PatchMarker, is_patch_marker
from .registry import DEFAULT_REGISTRY, PatchRegistry, PatchView, ScopedViews, ViewKind, aggregate
from .toggle import PatchToggle
from .utils.naming import extract_name, format_key

LOGGER = logging.getLogger(__name__)
TELEMETRY_LOGGER = logging.getLogger("overlay.telemetry")

EntryError = Tuple[PatchEntry, PatchApplicationError]


@dataclass(slots=True)
class ApplyReport:
    """Outcome of ``Patch.apply``.

    A clean run has ``applied == patches``, no errors and ``not_applied == 0``.
    """

    patches: int
    applied: int = 0
    errors: List[EntryError] = field(default_factory=list)
    not_applied: int = 0

    @property
    def succeeded(self) -> bool:
        return self.applied == self.patches and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "patches": self.patches,
            "applied": self.applied,
            "errors": [_error_to_dict(entry, error) for entry, error in self.errors],
            "not_applied": self.not_applied,
        }


@dataclass(slots=True)
class RevertReport:
    """Outcome of ``Patch.revert``.

    Any deviation from ``reverted == patches``, ``restored == conflicts``, no
    errors and ``still_applied == 0`` means the owner was changed by other code
    while the patch was applied.
    """

    patches: int
    reverted: int = 0
    restored: int = 0
    conflicts: int = 0
    errors: List[EntryError] = field(default_factory=list)
    still_applied: int = 0

    @property
    def clean(self) -> bool:
        return (
            self.reverted == self.patches
            and self.restored == self.conflicts
            and not self.errors
            and self.still_applied == 0
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "patches": self.patches,
            "reverted": self.reverted,
            "restored": self.restored,
            "conflicts": self.conflicts,
            "errors": [_error_to_dict(entry, error) for entry, error in self.errors],
            "still_applied": self.still_applied,
        }


def _error_to_dict(entry: PatchEntry, error: PatchApplicationError) -> dict[str, Any]:
    return {"key": format_key(entry.key), "message": str(error), **error.details}


def _emit_patch_event(event: str, **fields: Any) -> None:
    """Log a structured telemetry event for apply/revert runs."""
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    payload.update(fields)
    try:
        message = json.dumps(payload, separators=(",", ":"), ensure_ascii=True)
    except (TypeError, ValueError):
        message = json.dumps({key: str(value) for key, value in payload.items()}, separators=(",", ":"))
    TELEMETRY_LOGGER.info(message)


class _AggregateViewProperty:
    """Class access yields the global aggregation view of that name.

    Instance access falls through to ``instance_getter`` (``Patch.applied`` is
    both the global applied-view and, on an instance, the applied flag).
    """

    def __init__(self, kind: ViewKind, instance_getter: Callable[[Any], Any] | None = None) -> None:
        self.kind = kind
        self.instance_getter = instance_getter
        self.__doc__ = f"Global '{kind.value}' view on the class."

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return aggregate(owner.registry, owner.global_scope, self.kind)
        if self.instance_getter is None:
            raise AttributeError(
                f"'{self.kind.value}' is a class level view; use Patch.scoped_to(owner).{self.kind.value}"
            )
        return self.instance_getter(instance)


def _is_applied(patch: "Patch") -> bool:
    return patch.patches_applied > 0


class Patch:
    """Overlay a set of attributes onto ``owner`` and restore them on demand.

    ``spec`` may be a mapping, a class whose body lists the attributes, or a
    callable receiving this patch's store and returning either.  Mapping keys
    that are ``PatchMarker`` members declare template groups whose keys all
    share the marker's visibility and mutability.

    Example::

        patch = Patch(Config, {"debug": True, "describe": property(lambda self: "...")})
        patch.apply()
        ...
        patch.revert()
    """

    registry: ClassVar[PatchRegistry] = DEFAULT_REGISTRY
    global_scope: ClassVar[Any] = builtins
    stores: ClassVar["weakref.WeakKeyDictionary[Patch, Dict[PatchMarker | None, dict]]"] = (
        weakref.WeakKeyDictionary()
    )

    def __init__(
        self,
        owner: Any,
        spec: Any,
        options: PatchOptions | Mapping[str, Any] | None = None,
        *,
        registry: PatchRegistry | None = None,
    ) -> None:
        require_host(owner)
        self.owner = owner
        self.options = coerce_options(options)
        self.registry = registry if registry is not None else type(self).registry
        self.owner_display_name = self.options.display_name or extract_name(owner)

        self.patch_entries: Dict[str, PatchEntry] = {}
        self.patch_conflicts: Dict[str, PatchEntry] = {}
        self.patch_state: Dict[PatchEntry, bool] = {}
        self.patches_applied = 0
        self.active_toggles: List[PatchToggle] = []

        resolved = self.construct_with_store(spec, self)
        if isinstance(resolved, Mapping):
            resolved = dict(resolved)
        elif host_kind(resolved) is None:
            raise TypeError(f"Patch spec for {self.owner_display_name} must be a mapping or a namespace")
        self.patches_owner = resolved
        self._generate_patch_entries(resolved)

        self.registry.register(self)

    # ------------------------------------------------------------ construction
    def _generate_patch_entries(self, source: Any, overrides: Mapping[str, Any] | None = None) -> None:
        for key in spec_keys(source):
            if is_patch_marker(key):
                self._expand_template(source, key, overrides)
                continue
            try:
                entry = PatchEntry(key, source, self.options.condition_for(key), overrides)
            except (OverlayError, TypeError, ValueError) as error:
                LOGGER.warning("Failed to process patch for %s on %s: %s", format_key(key), self.owner_display_name, error)
                continue
            self.patch_entries[key] = entry
            self._capture_conflict(key)

    def _expand_template(self, source: Any, marker: PatchMarker, overrides: Mapping[str, Any] | None) -> None:
        try:
            group = self.construct_with_store(source[marker], self, marker)
        except Exception:
            LOGGER.exception("Template %s for %s raised; skipping its keys", marker.name, self.owner_display_name)
            return
        if not isinstance(group, Mapping):
            LOGGER.warning(
                "Template %s for %s produced %s instead of a mapping; skipping",
                marker.name,
                self.owner_display_name,
                type(group).__name__,
            )
            return
        group = dict(group)
        source[marker] = group
        self._generate_patch_entries(group, overrides if overrides is not None else marker.overrides)

    def _capture_conflict(self, key: str) -> None:
        if key in self.patch_conflicts or not has_own(self.owner, key):
            return
        try:
            self.patch_conflicts[key] = PatchEntry(key, self.owner)
        except (OverlayError, TypeError, ValueError) as error:
            LOGGER.warning("Cannot capture conflicting patch key %s: %s", key, error)

    @classmethod
    def store_for(cls, patch: "Patch", marker: PatchMarker | None = None) -> dict:
        """Return the store shared by every template of ``patch`` using ``marker``."""
        stores = cls.stores.setdefault(patch, {})
        return stores.setdefault(marker, {})

    @classmethod
    def construct_with_store(cls, template: Any, patch: "Patch", marker: PatchMarker | None = None) -> Any:
        """Call ``template`` with its store when it is a factory; return other values as is."""
        if not callable(template) or isinstance(template, type):
            return template
        return template(cls.store_for(patch, marker))

    # ---------------------------------------------------------------- queries
    applied = _AggregateViewProperty(ViewKind.APPLIED, _is_applied)
    known = _AggregateViewProperty(ViewKind.KNOWN)
    use = _AggregateViewProperty(ViewKind.USE)
    lazy = _AggregateViewProperty(ViewKind.LAZY)

    @property
    def patch_count(self) -> int:
        return len(self.patch_entries)

    @property
    def is_partially_patched(self) -> bool:
        return self.applied

    @property
    def is_fully_patched(self) -> bool:
        return self.patch_count == self.patches_applied

    @property
    def entries(self) -> List[Tuple[str, PatchEntry]]:
        return list(self.patch_entries.items())

    @property
    def applied_entries(self) -> List[Tuple[str, PatchEntry]]:
        return [(key, entry) for key, entry in self.entries if self.patch_state.get(entry) is True]

    @property
    def unapplied_entries(self) -> List[Tuple[str, PatchEntry]]:
        return [(key, entry) for key, entry in self.entries if self.patch_state.get(entry) is not True]

    @property
    def conflicts(self) -> List[Tuple[str, PatchEntry]]:
        return list(self.patch_conflicts.items())

    @property
    def patches(self) -> Dict[str, Any]:
        """Key -> current computed value for every entry."""
        return {key: entry.computed for key, entry in self.entries}

    @property
    def applied_patches(self) -> Dict[str, Any]:
        return {key: entry.computed for key, entry in self.applied_entries}

    @property
    def unapplied_patches(self) -> Dict[str, Any]:
        return {key: entry.computed for key, entry in self.unapplied_entries}

    @property
    def patch_keys(self) -> List[str]:
        return list(self.patch_entries)

    def __iter__(self) -> Iterator[Tuple[str, PatchEntry]]:
        return iter(self.entries)

    # ---------------------------------------------------------- apply/revert
    def _write_and_verify(self, key: str, descriptor: Descriptor) -> BaseException | None:
        """Define ``descriptor`` and read it back; returns the failure cause if any."""
        try:
            define_property(self.owner, key, descriptor)
            written = get_own_descriptor(self.owner, key)
        except Exception as error:
            return error
        if equal_descriptors(written, descriptor):
            return None
        return OverlayError(f"{self.owner_display_name}.{key} did not keep the written descriptor")

    def apply(self, on_result: Callable[[ApplyReport], Any] | None = None) -> ApplyReport:
        """Define every admitted entry on the owner and verify each write."""
        entries = self.entries
        report = ApplyReport(patches=len(entries), not_applied=len(entries))
        self.patch_state.clear()

        for key, entry in entries:
            try:
                allowed = entry.is_allowed
            except Exception as error:
                report.errors.append(
                    (entry, PatchApplicationError(f"Condition for patch key {key} raised", key, cause=error))
                )
                self.patch_state[entry] = False
                continue
            if not allowed:
                self.patch_state[entry] = False
                continue

            cause = self._write_and_verify(key, entry.descriptor)
            if cause is None:
                report.applied += 1
                report.not_applied -= 1
                self.patch_state[entry] = True
            else:
                report.errors.append(
                    (entry, PatchApplicationError(f"Could not apply patch for key {key}", key, cause=cause))
                )
                self.patch_state[entry] = False

        self.patches_applied = report.applied
        self._emit("patch.apply", report)
        if callable(on_result):
            on_result(report)
        return report

    def _is_live(self, entry: PatchEntry) -> bool:
        if self.patch_state.get(entry) is True:
            return True
        return equal_descriptors(get_own_descriptor(self.owner, entry.key), entry.descriptor)

    def revert(self, on_result: Callable[[RevertReport], Any] | None = None) -> RevertReport | None:
        """Remove applied entries and restore captured conflicts.

        Does nothing (and returns ``None``) unless the patch is applied.
        """
        if not self.applied:
            return None

        entries = self.entries
        conflicts = self.conflicts
        report = RevertReport(patches=len(entries), conflicts=len(conflicts))

        for key, entry in entries:
            was_applied = self.patch_state.get(entry) is True
            if not self._is_live(entry):
                report.reverted += 1
                continue
            if delete_property(self.owner, key):
                report.reverted += 1
                if was_applied:
                    self.patches_applied -= 1
                self.patch_state[entry] = False
            else:
                report.errors.append((entry, PatchApplicationError(f"Failed to revert patch {key}", key)))

        for key, conflict in conflicts:
            cause = self._write_and_verify(key, conflict.descriptor)
            if cause is None:
                report.restored += 1
            else:
                report.errors.append(
                    (conflict, PatchApplicationError(f"Failed to restore original {key}", key, cause=cause))
                )

        report.still_applied = self.patches_applied
        self._emit("patch.revert", report)
        if callable(on_result):
            on_result(report)
        return report

    def _emit(self, event: str, report: ApplyReport | RevertReport) -> None:
        if report.errors:
            LOGGER.warning(
                "%s on %s finished with %d error(s): %s",
                event,
                self.owner_display_name,
                len(report.errors),
                ", ".join(str(error) for _, error in report.errors),
            )
        if self.registry.telemetry:
            _emit_patch_event(event, owner=self.owner_display_name, **report.to_dict())

    def create_toggle(self, prevent_revert: bool = False) -> PatchToggle:
        return PatchToggle(self, prevent_revert)

    def release(self) -> None:
        """Stop tracking this patch in its registry; the owner is left untouched."""
        self.registry.release(self)

    # ------------------------------------------------------------ class level
    @classmethod
    def _registry(cls, registry: PatchRegistry | None) -> PatchRegistry:
        return registry if registry is not None else cls.registry

    @classmethod
    def enable_for(cls, owner: Any, *, registry: PatchRegistry | None = None) -> List[ApplyReport]:
        """Apply every patch registered for ``owner``."""
        return [patch.apply() for patch in cls._registry(registry).patches_for(owner)]

    @classmethod
    def disable_for(cls, owner: Any, *, registry: PatchRegistry | None = None) -> List[RevertReport]:
        """Revert every applied patch registered for ``owner``, newest first."""
        reports = []
        for patch in reversed(cls._registry(registry).patches_for(owner)):
            report = patch.revert()
            if report is not None:
                reports.append(report)
        return reports

    @classmethod
    def enable_all(cls, *, registry: PatchRegistry | None = None) -> None:
        for owner in cls._registry(registry).owners():
            cls.enable_for(owner, registry=registry)

    @classmethod
    def disable_all(cls, *, registry: PatchRegistry | None = None) -> None:
        for owner in cls._registry(registry).owners():
            cls.disable_for(owner, registry=registry)

    @classmethod
    def enable_probable_statics(cls, *, registry: PatchRegistry | None = None) -> None:
        """Enable patches whose owner is a class or other callable."""
        for owner in cls._registry(registry).owners():
            if callable(owner):
                cls.enable_for(owner, registry=registry)

    @classmethod
    def disable_probable_statics(cls, *, registry: PatchRegistry | None = None) -> None:
        for owner in cls._registry(registry).owners():
            if callable(owner):
                cls.disable_for(owner, registry=registry)

    @classmethod
    def enable_probable_instances(cls, *, registry: PatchRegistry | None = None) -> None:
        """Enable patches whose owner is not callable (instances, modules, mappings)."""
        for owner in cls._registry(registry).owners():
            if not callable(owner):
                cls.enable_for(owner, registry=registry)

    @classmethod
    def disable_probable_instances(cls, *, registry: PatchRegistry | None = None) -> None:
        for owner in cls._registry(registry).owners():
            if not callable(owner):
                cls.disable_for(owner, registry=registry)

    @classmethod
    def scoped_to(cls, owner: Any, *, registry: PatchRegistry | None = None) -> ScopedViews:
        """The applied/known/use/lazy views for one owner."""
        return ScopedViews(cls._registry(registry), owner)

    def __repr__(self) -> str:
        keys = ", ".join(self.patch_keys)
        return f"{type(self).__name__}[{self.owner_display_name}] {{ {keys} }}"


__all__ = [
    "ApplyReport",
    "Patch",
    "PatchView",
    "RevertReport",
]
