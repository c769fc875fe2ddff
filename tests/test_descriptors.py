from __future__ import annotations

import types
from types import SimpleNamespace

import pytest

from overlay.descriptors import (
    AccessorDescriptor,
    DataDescriptor,
    HostKind,
    bind_descriptor,
    define_property,
    delete_property,
    describe,
    equal_descriptors,
    forget_owner,
    get_own_descriptor,
    has_own,
    host_kind,
    is_read_only,
    merge_descriptor,
    own_keys,
    spec_keys,
)
from overlay.errors import InvalidOwnerError


def test_host_kind_classifies_supported_owners() -> None:
    class Target:
        pass

    assert host_kind({}) is HostKind.MAPPING
    assert host_kind(Target) is HostKind.CLASS
    assert host_kind(SimpleNamespace()) is HostKind.OBJECT
    assert host_kind(types) is HostKind.OBJECT
    assert host_kind(5) is None
    assert host_kind((1, 2)) is None


def test_get_own_descriptor_ignores_inherited_attributes() -> None:
    class Base:
        inherited = 1

    class Child(Base):
        own = 2

    assert get_own_descriptor(Child, "inherited") is None
    descriptor = get_own_descriptor(Child, "own")
    assert isinstance(descriptor, DataDescriptor)
    assert descriptor.value == 2
    assert not has_own(Child, "inherited")


def test_get_own_descriptor_rejects_non_hosts() -> None:
    with pytest.raises(InvalidOwnerError):
        get_own_descriptor(42, "real")


def test_define_property_remembers_flags() -> None:
    owner = SimpleNamespace()
    define_property(owner, "secret", DataDescriptor(value=1, enumerable=False))

    descriptor = get_own_descriptor(owner, "secret")
    assert descriptor is not None
    assert descriptor.enumerable is False
    assert owner.secret == 1
    assert "secret" in own_keys(owner)
    assert "secret" not in own_keys(owner, include_hidden=False)


def test_non_configurable_attribute_cannot_be_redefined_or_deleted() -> None:
    owner = {}
    locked = DataDescriptor(value="v", configurable=False)
    define_property(owner, "key", locked)

    define_property(owner, "key", DataDescriptor(value="v", configurable=False))
    with pytest.raises(TypeError):
        define_property(owner, "key", DataDescriptor(value="other"))

    assert delete_property(owner, "key") is False
    assert owner["key"] == "v"


def test_delete_property_reports_success() -> None:
    owner = SimpleNamespace(value=1)

    assert delete_property(owner, "value") is True
    assert not hasattr(owner, "value")
    assert delete_property(owner, "value") is True


def test_accessor_on_class_becomes_property() -> None:
    class Target:
        pass

    def answer(self):
        return 42

    define_property(Target, "answer", AccessorDescriptor(get=answer))

    assert Target().answer == 42
    descriptor = get_own_descriptor(Target, "answer")
    assert isinstance(descriptor, AccessorDescriptor)
    assert descriptor.get is answer


def test_accessor_on_plain_instance_is_rejected() -> None:
    with pytest.raises(TypeError):
        define_property(SimpleNamespace(), "answer", AccessorDescriptor(get=lambda self: 1))


def test_read_only_mapping_refuses_writes() -> None:
    proxy = types.MappingProxyType({"a": 1})

    with pytest.raises(TypeError):
        define_property(proxy, "b", DataDescriptor(value=2))


def test_immutable_builtin_types_report_read_only() -> None:
    descriptor = get_own_descriptor(int, "bit_length")

    assert descriptor is not None
    assert is_read_only(descriptor)
    assert describe(descriptor) == "Data [ReadOnly]"


def test_merge_descriptor_switches_variant_and_keeps_flags() -> None:
    base = DataDescriptor(value=1, enumerable=False)

    merged = merge_descriptor(base, {"get": len})

    assert isinstance(merged, AccessorDescriptor)
    assert merged.get is len
    assert merged.enumerable is False
    assert merge_descriptor(None).value is None
    assert merge_descriptor(base, {"configurable": False}).value == 1


def test_merge_descriptor_rejects_bad_overrides() -> None:
    with pytest.raises(ValueError):
        merge_descriptor(None, {"colour": "red"})
    with pytest.raises(TypeError):
        merge_descriptor(None, {"value": 1, "get": len})


def test_equal_descriptors_compares_values_by_identity() -> None:
    payload = [1]

    assert equal_descriptors(DataDescriptor(value=payload), DataDescriptor(value=payload))
    assert not equal_descriptors(DataDescriptor(value=payload), DataDescriptor(value=[1]))
    assert not equal_descriptors(DataDescriptor(value=payload), None)
    assert not equal_descriptors(DataDescriptor(), AccessorDescriptor())


def test_bind_descriptor_resolves_against_original_owner() -> None:
    source = {"n": 4}
    bound = bind_descriptor(AccessorDescriptor(get=lambda owner: owner["n"] * 2), source)

    assert bound.get(object()) == 8


def test_spec_keys_skip_class_body_bookkeeping() -> None:
    class Spec:
        """Docstring is not a patch key."""

        greeting = "hi"

        def shout(self):
            return "HI"

    assert spec_keys(Spec) == ["greeting", "shout"]
    assert spec_keys({"a": 1, "b": 2}) == ["a", "b"]


def test_describe_labels_hidden_accessors() -> None:
    assert describe(AccessorDescriptor(enumerable=False)) == "Accessor [Hidden]"
    assert describe(DataDescriptor(writable=False)) == "Data [ReadOnly]"


def test_instance_write_under_class_data_descriptor_is_rejected() -> None:
    class Named:
        @property
        def name(self):
            return "original"

        plain = "class level"

    owner = Named()

    with pytest.raises(TypeError):
        define_property(owner, "name", DataDescriptor(value="patched"))
    define_property(owner, "plain", DataDescriptor(value="instance level"))
    assert owner.plain == "instance level"


def test_forget_owner_releases_strongly_held_mappings() -> None:
    owner = {}
    define_property(owner, "const", DataDescriptor(value=1, configurable=False))

    assert delete_property(owner, "const") is False
    assert forget_owner(owner) is True
    assert forget_owner(owner) is False
    assert get_own_descriptor(owner, "const").configurable is True
    assert delete_property(owner, "const") is True
