"""Single-key patches derived from a named function or class."""

from __future__ import annotations

import builtins
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterator, List, Set

from .config import PatchOptions
from .descriptors import get_own_descriptor, is_read_only
from .errors import CannotBeExtended, MissingOwnerValue
from .patch import Patch
from .registry import PatchRegistry
from .utils.naming import extract_name

_PRIMITIVE_TYPES = (int, float, complex, bool, str, bytes)


@dataclass(slots=True)
class ExtensionInput:
    """Key and value derived from the first ``Extension`` argument."""

    key: Any = None
    extension: Any = None
    valid: bool = False
    extension_class: type | None = None
    function: Any = None


def determine_input(key_class_or_function: Any) -> ExtensionInput:
    """Resolve the attribute name and value an extension should install."""
    if isinstance(key_class_or_function, str):
        return ExtensionInput(key=key_class_or_function, valid=bool(key_class_or_function))
    if callable(key_class_or_function):
        name = getattr(key_class_or_function, "__name__", None)
        if not isinstance(name, str) or not name or name == "<lambda>":
            return ExtensionInput(key=name)
        result = ExtensionInput(key=name, extension=key_class_or_function, valid=True)
        if inspect.isclass(key_class_or_function):
            result.extension_class = key_class_or_function
        elif inspect.isfunction(key_class_or_function) or inspect.isbuiltin(key_class_or_function):
            result.function = key_class_or_function
        return result
    return ExtensionInput(key=key_class_or_function)


class Extension(Patch):
    """Patch that installs one named function, class or value on an owner.

    ``Extension(slugify)`` installs ``slugify`` under its own name on the
    ``builtins`` module; ``Extension("VERSION", "1.0", owner=config)``
    installs a value under an explicit name.
    """

    def __init__(
        self,
        key_class_or_function: Any,
        extension: Any = None,
        owner: Any = builtins,
        options: PatchOptions | Mapping[str, Any] | None = None,
        *,
        registry: PatchRegistry | None = None,
    ) -> None:
        resolved = determine_input(key_class_or_function)
        if not resolved.valid:
            raise MissingOwnerValue(owner, resolved.key)
        key = resolved.key
        value = extension if extension is not None else resolved.extension

        existing = get_own_descriptor(owner, key)
        if existing is not None and is_read_only(existing):
            raise CannotBeExtended(owner, key)

        super().__init__(owner, {key: value}, options, registry=registry)
        self.key = key
        self.extension_class = resolved.extension_class
        self.function = resolved.function

    @property
    def value(self) -> Any:
        entry = self.patch_entries.get(self.key)
        return entry.computed if entry is not None else None

    @property
    def is_function(self) -> bool:
        return self.function is not None

    @property
    def is_class(self) -> bool:
        return self.extension_class is not None

    @property
    def is_primitive(self) -> bool:
        return self.value is None or isinstance(self.value, _PRIMITIVE_TYPES)

    @property
    def is_object(self) -> bool:
        return not self.is_primitive

    @classmethod
    def create_set(cls, name: str, *items: Any) -> "ExtensionSet":
        return ExtensionSet(name, *items)

    def __repr__(self) -> str:
        return f"Extension[{self.key}:{extract_name(self.value)}]"


class ExtensionSet:
    """Named group of extensions applied and reverted together."""

    def __init__(self, name: str, *items: Any) -> None:
        self.name = name
        self.extensions: List[Extension] = []
        self.extension_objects: Set[int] = set()
        for item in items:
            self.add(item)

    def add(self, item: Any) -> Extension | None:
        """Add an extension (functions and classes are wrapped); duplicates are ignored."""
        value = item.value if isinstance(item, Extension) else item
        if id(value) in self.extension_objects:
            return None
        extension = item if isinstance(item, Extension) else Extension(item)
        self.extension_objects.add(id(value))
        self.extensions.append(extension)
        return extension

    def apply(self) -> None:
        for extension in self.extensions:
            extension.apply()

    def revert(self) -> None:
        for extension in reversed(self.extensions):
            extension.revert()

    def __iter__(self) -> Iterator[Extension]:
        return iter(self.extensions)

    def __len__(self) -> int:
        return len(self.extensions)

    def __repr__(self) -> str:
        keys = ", ".join(str(extension.key) for extension in self.extensions)
        return f"ExtensionSet[{self.name}] {{ {keys} }}"


__all__ = ["Extension", "ExtensionInput", "ExtensionSet", "determine_input"]
