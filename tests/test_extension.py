from __future__ import annotations

import builtins
from types import SimpleNamespace

import pytest

from overlay.cleaner import PatchCleaner
from overlay.descriptors import DataDescriptor, define_property
from overlay.errors import CannotBeExtended, MissingOwnerValue
from overlay.extension import Extension, ExtensionSet, determine_input
from overlay.patch import Patch


def overlay_shout(text):
    return text.upper()


def overlay_whisper(text):
    return text.lower()


class OverlayWidget:
    pass


def test_determine_input() -> None:
    assert determine_input(overlay_shout).function is overlay_shout
    assert determine_input(OverlayWidget).extension_class is OverlayWidget
    assert determine_input("name").valid
    assert not determine_input("").valid
    assert not determine_input(lambda: None).valid
    assert not determine_input(42).valid


def test_function_extension_on_namespace() -> None:
    owner = SimpleNamespace()
    extension = Extension(overlay_shout, owner=owner)

    assert extension.key == "overlay_shout"
    assert extension.is_function and not extension.is_class
    assert extension.is_object
    extension.apply()
    assert owner.overlay_shout("hi") == "HI"
    extension.revert()
    assert not hasattr(owner, "overlay_shout")


def test_class_extension() -> None:
    owner = SimpleNamespace()
    extension = Extension(OverlayWidget, owner=owner)

    assert extension.is_class
    assert extension.value is OverlayWidget
    assert repr(extension) == "Extension[OverlayWidget:OverlayWidget]"


def test_named_value_extension() -> None:
    owner = SimpleNamespace()
    extension = Extension("VERSION", "1.0", owner=owner)

    assert extension.is_primitive
    assert extension.value == "1.0"
    extension.apply()
    assert owner.VERSION == "1.0"


@pytest.mark.parametrize("value", [lambda: None, "", 42])
def test_unusable_input_is_rejected(value) -> None:
    with pytest.raises(MissingOwnerValue) as excinfo:
        Extension(value, owner=SimpleNamespace())

    assert "does not have a property named" in str(excinfo.value)


def test_read_only_attribute_cannot_be_extended() -> None:
    owner = SimpleNamespace()
    define_property(owner, "locked", DataDescriptor(value=1, writable=False))

    with pytest.raises(CannotBeExtended) as excinfo:
        Extension("locked", 2, owner=owner)

    assert str(excinfo.value) == "SimpleNamespace instance disallows tampering with locked."


def test_default_owner_is_builtins() -> None:
    extension = Extension(overlay_shout)

    assert extension.owner is builtins
    try:
        extension.apply()
        assert builtins.overlay_shout("x") == "X"
    finally:
        extension.revert()
    assert not hasattr(builtins, "overlay_shout")


def test_extension_set_applies_members_and_skips_duplicates() -> None:
    extensions = Extension.create_set("text", overlay_shout, overlay_whisper, overlay_shout)

    assert isinstance(extensions, ExtensionSet)
    assert len(extensions) == 2
    assert repr(extensions) == "ExtensionSet[text] { overlay_shout, overlay_whisper }"
    try:
        extensions.apply()
        assert builtins.overlay_whisper("Q") == "q"
    finally:
        extensions.revert()
    assert not hasattr(builtins, "overlay_shout")
    assert not hasattr(builtins, "overlay_whisper")


def test_extension_set_accepts_prebuilt_extensions() -> None:
    owner = SimpleNamespace()
    extension = Extension(overlay_shout, owner=owner)
    extensions = ExtensionSet("mixed", extension)

    assert extensions.add(overlay_shout) is None
    assert list(extensions) == [extension]


def test_cleaner_reverts_only_when_keys_remain() -> None:
    owner = SimpleNamespace()
    patch = Patch(owner, {"a": 1, "b": 2})
    cleaner = PatchCleaner(patch)

    assert not PatchCleaner.needs_cleanup(patch)
    patch.apply()
    assert PatchCleaner.needs_cleanup(patch)
    assert cleaner().clean
    assert vars(owner) == {}

    patch.apply()
    del owner.b
    assert cleaner() is None
    assert owner.a == 1
