"""Single attribute unit tracked by a patch."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from .descriptors import (
    AccessorDescriptor,
    DataDescriptor,
    Descriptor,
    bind_descriptor,
    define_property,
    describe,
    get_own_descriptor,
    is_read_only,
    merge_descriptor,
    require_host,
)
from .errors import InvalidKeyError

Condition = Callable[[], Any]


class PatchEntry:
    """Snapshot of one ``(key, descriptor, owner, condition)`` unit.

    The descriptor is the owning object's own descriptor for ``key`` (if it
    has one) merged with ``overrides``, so an entry can describe an attribute
    that does not exist yet.  Entries never change after construction and are
    not refreshed when the owning object is mutated later.
    """

    __slots__ = ("key", "descriptor", "owner", "condition")

    def __init__(
        self,
        key: str,
        owning_object: Any,
        condition: Condition | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> None:
        if not isinstance(key, str) or not key:
            raise InvalidKeyError(key)
        require_host(owning_object)

        self.key: str = key
        self.owner: Any = owning_object
        self.descriptor: Descriptor = merge_descriptor(get_own_descriptor(owning_object, key), overrides)
        self.condition: Condition | None = condition if callable(condition) else None

    @property
    def computed(self) -> Any:
        """Current value; accessors are evaluated against the owning object."""
        descriptor = self.descriptor
        if isinstance(descriptor, AccessorDescriptor):
            if descriptor.get is None:
                return None
            return descriptor.get(self.owner)
        return descriptor.value

    @property
    def is_data(self) -> bool:
        return isinstance(self.descriptor, DataDescriptor)

    @property
    def is_accessor(self) -> bool:
        return isinstance(self.descriptor, AccessorDescriptor)

    @property
    def is_read_only(self) -> bool:
        return is_read_only(self.descriptor)

    @property
    def is_allowed(self) -> bool:
        if self.condition is None:
            return True
        return bool(self.condition())

    def apply_to(self, target: Any, bind_accessors: bool = False) -> None:
        """Define this entry's descriptor on ``target``.

        With ``bind_accessors`` the getter/setter keep resolving against the
        original owner when invoked through ``target``.
        """
        descriptor = bind_descriptor(self.descriptor, self.owner) if bind_accessors else self.descriptor
        define_property(target, self.key, descriptor)

    def __repr__(self) -> str:
        return f"PatchEntry<{self.key} {describe(self.descriptor)}>"


__all__ = ["Condition", "PatchEntry"]
