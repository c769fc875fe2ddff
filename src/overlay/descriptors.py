"""Attribute descriptor model used by the overlay engine.

Python objects do not carry per-attribute ``writable``/``enumerable``/
``configurable`` flags, so this module supplies them:

``DataDescriptor`` / ``AccessorDescriptor``
    Immutable snapshots of a single attribute.  Accessors are stored on their
    host as ``property`` objects, so a patch definition declares one simply
    by using ``property(fget, fset)`` as the value.

Hosts
    Three kinds of owners can carry descriptors: mutable mappings (the key is
    an item), classes (the key lives in the class ``__dict__``) and any other
    object exposing a writable instance ``__dict__`` (modules, functions,
    plain instances).  Only *own* attributes are considered; inherited
    attributes are never reported.

Flags
    Non-default flags are remembered in a module level table keyed by owner
    identity.  The table only holds keys defined through ``define_property``
    and forgets them on ``delete_property``.  Immutable builtin types report
    every attribute as non-configurable and non-writable.
    Owners that cannot be weakly referenced (plain ``dict`` objects) are held
    strongly while they carry non-default flags, so a mapping that keeps a
    non-configurable key stays alive until ``forget_owner`` drops its record.
"""

from __future__ import annotations

import functools
import weakref
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping as MappingType, Tuple, Union

from .errors import InvalidOwnerError
from .utils.naming import extract_name

# Py_TPFLAGS_IMMUTABLETYPE
_IMMUTABLE_TYPE_FLAG = 1 << 8

# Entries the interpreter adds to every class body; never part of a patch spec.
CLASS_BODY_ATTRIBUTES = frozenset(
    {
        "__module__",
        "__qualname__",
        "__doc__",
        "__dict__",
        "__weakref__",
        "__firstlineno__",
        "__static_attributes__",
        "__annotations__",
        "__annotate__",
        "__annotate_func__",
        "__annotations_cache__",
    }
)

_DATA_FIELDS = frozenset({"value", "writable"})
_ACCESSOR_FIELDS = frozenset({"get", "set"})
_SHARED_FIELDS = frozenset({"enumerable", "configurable"})
DESCRIPTOR_FIELDS = _DATA_FIELDS | _ACCESSOR_FIELDS | _SHARED_FIELDS


class HostKind(str, Enum):
    """How an owner stores its attributes."""

    MAPPING = "mapping"
    CLASS = "class"
    OBJECT = "object"


@dataclass(frozen=True, slots=True, eq=False)
class DataDescriptor:
    """Plain value attribute."""

    value: Any = None
    writable: bool = True
    enumerable: bool = True
    configurable: bool = True


@dataclass(frozen=True, slots=True, eq=False)
class AccessorDescriptor:
    """Attribute backed by getter/setter callables."""

    get: Callable[..., Any] | None = None
    set: Callable[..., Any] | None = None
    enumerable: bool = True
    configurable: bool = True
    # Original property object, written back unchanged while get/set still match it.
    raw: Any = None


Descriptor = Union[DataDescriptor, AccessorDescriptor]

_Flags = Tuple[bool, bool, bool]  # writable, enumerable, configurable
_DEFAULT_FLAGS: _Flags = (True, True, True)
_IMMUTABLE_FLAGS: _Flags = (False, True, False)


@dataclass(slots=True)
class _FlagRecord:
    owner_ref: Callable[[], Any]
    flags: Dict[Any, _Flags] = field(default_factory=dict)

    @property
    def owner(self) -> Any:
        return self.owner_ref()


_FLAG_TABLE: Dict[int, _FlagRecord] = {}


def _reference(owner: Any) -> Callable[[], Any]:
    """Weak reference to owner when possible; plain dicts are held strongly until ``forget_owner``."""
    owner_id = id(owner)
    try:
        return weakref.ref(owner, lambda _ref: _FLAG_TABLE.pop(owner_id, None))
    except TypeError:
        return lambda: owner


def host_kind(owner: Any) -> HostKind | None:
    """Classify ``owner`` or return ``None`` when it cannot host attributes."""
    if isinstance(owner, Mapping):
        return HostKind.MAPPING
    if isinstance(owner, type):
        return HostKind.CLASS
    try:
        namespace = vars(owner)
    except TypeError:
        return None
    if isinstance(namespace, dict):
        return HostKind.OBJECT
    return None


def require_host(owner: Any) -> HostKind:
    kind = host_kind(owner)
    if kind is None:
        raise InvalidOwnerError(owner)
    return kind


def _namespace(owner: Any, kind: HostKind) -> MappingType[Any, Any]:
    if kind is HostKind.MAPPING:
        return owner
    if kind is HostKind.CLASS:
        return owner.__dict__
    return vars(owner)


def _is_immutable_type(owner: Any) -> bool:
    return isinstance(owner, type) and bool(getattr(owner, "__flags__", 0) & _IMMUTABLE_TYPE_FLAG)


def _flags_for(owner: Any, key: Any) -> _Flags:
    if _is_immutable_type(owner):
        return _IMMUTABLE_FLAGS
    record = _FLAG_TABLE.get(id(owner))
    if record is None or record.owner is not owner:
        return _DEFAULT_FLAGS
    return record.flags.get(key, _DEFAULT_FLAGS)


def _remember_flags(owner: Any, key: Any, descriptor: Descriptor) -> None:
    writable = descriptor.writable if isinstance(descriptor, DataDescriptor) else True
    flags = (writable, descriptor.enumerable, descriptor.configurable)
    if flags == _DEFAULT_FLAGS:
        _forget_flags(owner, key)
        return
    record = _FLAG_TABLE.get(id(owner))
    if record is None or record.owner is not owner:
        record = _FlagRecord(owner_ref=_reference(owner))
        _FLAG_TABLE[id(owner)] = record
    record.flags[key] = flags


def _forget_flags(owner: Any, key: Any) -> None:
    record = _FLAG_TABLE.get(id(owner))
    if record is None or record.owner is not owner:
        return
    record.flags.pop(key, None)
    if not record.flags:
        del _FLAG_TABLE[id(owner)]


def forget_owner(owner: Any) -> bool:
    """Drop every remembered flag for ``owner``; ``False`` when none were kept."""
    record = _FLAG_TABLE.get(id(owner))
    if record is None or record.owner is not owner:
        return False
    del _FLAG_TABLE[id(owner)]
    return True


def _shadowing_descriptor(owner: Any, key: Any) -> Any:
    """Data descriptor on ``type(owner)`` that takes precedence over the instance dict."""
    for klass in type(owner).__mro__:
        if key in klass.__dict__:
            attr = klass.__dict__[key]
            return attr if hasattr(type(attr), "__set__") else None
    return None


def get_own_descriptor(owner: Any, key: Any) -> Descriptor | None:
    """Return the descriptor of ``owner``'s own attribute ``key``, if any."""
    kind = require_host(owner)
    namespace = _namespace(owner, kind)
    if key not in namespace:
        return None
    raw = namespace[key]
    writable, enumerable, configurable = _flags_for(owner, key)
    if isinstance(raw, property):
        return AccessorDescriptor(
            get=raw.fget,
            set=raw.fset,
            enumerable=enumerable,
            configurable=configurable,
            raw=raw,
        )
    return DataDescriptor(
        value=raw,
        writable=writable,
        enumerable=enumerable,
        configurable=configurable,
    )


def has_own(owner: Any, key: Any) -> bool:
    kind = require_host(owner)
    return key in _namespace(owner, kind)


def own_keys(owner: Any, *, include_hidden: bool = True) -> List[Any]:
    """List the own attribute keys of ``owner`` in storage order."""
    kind = require_host(owner)
    keys = list(_namespace(owner, kind).keys())
    if include_hidden:
        return keys
    return [key for key in keys if _flags_for(owner, key)[1]]


def spec_keys(spec: Any) -> List[Any]:
    """Keys a patch definition contributes, skipping class-body bookkeeping."""
    kind = require_host(spec)
    keys = list(_namespace(spec, kind).keys())
    if kind is HostKind.CLASS:
        return [key for key in keys if key not in CLASS_BODY_ATTRIBUTES]
    return keys


def _raw_value(descriptor: Descriptor) -> Any:
    if isinstance(descriptor, AccessorDescriptor):
        raw = descriptor.raw
        if isinstance(raw, property) and raw.fget is descriptor.get and raw.fset is descriptor.set:
            return raw
        return property(descriptor.get, descriptor.set)
    return descriptor.value


def define_property(owner: Any, key: Any, descriptor: Descriptor) -> None:
    """Define ``key`` on ``owner`` from ``descriptor``.

    Raises ``TypeError`` when the existing attribute is non-configurable and
    differs from ``descriptor``, when an accessor targets a host that cannot
    run one, or when the host itself refuses the write.
    """
    kind = require_host(owner)
    current = get_own_descriptor(owner, key)
    if current is not None and not current.configurable:
        if equal_descriptors(current, descriptor):
            return
        raise TypeError(f"Cannot redefine non-configurable attribute {key!r} of {extract_name(owner)}")

    if kind is HostKind.MAPPING:
        if not isinstance(owner, MutableMapping):
            raise TypeError(f"{extract_name(owner)} is a read-only mapping")
        owner[key] = _raw_value(descriptor)
    elif kind is HostKind.CLASS:
        setattr(owner, key, _raw_value(descriptor))
    else:
        if isinstance(descriptor, AccessorDescriptor):
            raise TypeError(
                f"Cannot define accessor {key!r} on {extract_name(owner)}; "
                "accessors require a class or mapping owner"
            )
        if _shadowing_descriptor(owner, key) is not None:
            raise TypeError(
                f"{type(owner).__qualname__}.{key} is a data descriptor; "
                f"an instance value on {extract_name(owner)} would never be read"
            )
        vars(owner)[key] = descriptor.value
    _remember_flags(owner, key, descriptor)


def delete_property(owner: Any, key: Any) -> bool:
    """Delete ``owner``'s own attribute ``key``; ``False`` when it cannot be removed."""
    kind = require_host(owner)
    current = get_own_descriptor(owner, key)
    if current is None:
        return True
    if not current.configurable:
        return False
    try:
        if kind is HostKind.MAPPING:
            del owner[key]  # type: ignore[attr-defined]
        elif kind is HostKind.CLASS:
            delattr(owner, key)
        else:
            del vars(owner)[key]
    except (AttributeError, KeyError, TypeError):
        return False
    _forget_flags(owner, key)
    return True


def merge_descriptor(
    base: Descriptor | None,
    overrides: MappingType[str, Any] | None = None,
) -> Descriptor:
    """Overlay ``overrides`` on ``base``; overrides win.

    ``get``/``set`` overrides produce an accessor, ``value``/``writable`` a data
    descriptor.  Without a base and without a value the result is a data
    descriptor holding ``None``.
    """
    fields = dict(overrides or {})
    unknown = set(fields) - DESCRIPTOR_FIELDS
    if unknown:
        raise ValueError(f"Unknown descriptor fields: {', '.join(sorted(unknown))}")
    if _ACCESSOR_FIELDS & set(fields) and _DATA_FIELDS & set(fields):
        raise TypeError("A descriptor cannot specify both accessors and a value or writable flag")

    variant: type
    if _ACCESSOR_FIELDS & set(fields):
        variant = AccessorDescriptor
    elif _DATA_FIELDS & set(fields):
        variant = DataDescriptor
    elif base is not None:
        variant = type(base)
    else:
        variant = DataDescriptor

    if base is None:
        start: Descriptor = variant()
    elif isinstance(base, variant):
        start = base
    else:
        start = variant(enumerable=base.enumerable, configurable=base.configurable)
    return replace(start, **fields)


def equal_descriptors(left: Descriptor | None, right: Descriptor | None) -> bool:
    """Compare every descriptor field; values and callables by identity."""
    if left is None or right is None:
        return False
    if type(left) is not type(right):
        return False
    if left.configurable != right.configurable or left.enumerable != right.enumerable:
        return False
    if isinstance(left, DataDescriptor):
        return left.value is right.value and left.writable == right.writable  # type: ignore[union-attr]
    return left.get is right.get and left.set is right.set  # type: ignore[union-attr]


def _bind(func: Callable[..., Any] | None, owner: Any) -> Callable[..., Any] | None:
    if func is None:
        return None

    @functools.wraps(func)
    def bound(_target: Any, *args: Any) -> Any:
        return func(owner, *args)

    return bound


def bind_descriptor(descriptor: Descriptor, owner: Any) -> Descriptor:
    """Return ``descriptor`` with its accessors resolving against ``owner``."""
    if isinstance(descriptor, AccessorDescriptor):
        return replace(descriptor, get=_bind(descriptor.get, owner), set=_bind(descriptor.set, owner))
    return descriptor


def describe(descriptor: Descriptor) -> str:
    """Short human readable label, e.g. ``Data [ReadOnly]``."""
    label = "Data" if isinstance(descriptor, DataDescriptor) else "Accessor"
    if is_read_only(descriptor):
        label += " [ReadOnly]"
    if not descriptor.enumerable:
        label += " [Hidden]"
    return label


def is_read_only(descriptor: Descriptor) -> bool:
    if not descriptor.configurable:
        return True
    return isinstance(descriptor, DataDescriptor) and not descriptor.writable


__all__ = [
    "AccessorDescriptor",
    "CLASS_BODY_ATTRIBUTES",
    "DESCRIPTOR_FIELDS",
    "DataDescriptor",
    "Descriptor",
    "HostKind",
    "bind_descriptor",
    "define_property",
    "delete_property",
    "describe",
    "equal_descriptors",
    "forget_owner",
    "get_own_descriptor",
    "has_own",
    "host_kind",
    "is_read_only",
    "merge_descriptor",
    "own_keys",
    "require_host",
    "spec_keys",
]
