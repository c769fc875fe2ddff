"""Reversible attribute overlays for live Python objects."""

from .cleaner import PatchCleaner
from .config import OverlaySettings, PatchOptions, load_settings
from .descriptors import AccessorDescriptor, DataDescriptor, Descriptor
from .entry import PatchEntry
from .errors import (
    CannotBeExtended,
    InvalidKeyError,
    InvalidOwnerError,
    MissingOwnerValue,
    OverlayError,
    PatchApplicationError,
)
from .extension import Extension, ExtensionSet
from .markers import PatchMarker
from .patch import ApplyReport, Patch, RevertReport
from .registry import DEFAULT_REGISTRY, PatchRegistry, PatchView, ScopedViews
from .toggle import PatchToggle

__all__ = [
    "AccessorDescriptor",
    "ApplyReport",
    "CannotBeExtended",
    "DEFAULT_REGISTRY",
    "DataDescriptor",
    "Descriptor",
    "Extension",
    "ExtensionSet",
    "InvalidKeyError",
    "InvalidOwnerError",
    "MissingOwnerValue",
    "OverlayError",
    "OverlaySettings",
    "Patch",
    "PatchApplicationError",
    "PatchCleaner",
    "PatchEntry",
    "PatchMarker",
    "PatchOptions",
    "PatchRegistry",
    "PatchToggle",
    "PatchView",
    "RevertReport",
    "ScopedViews",
    "load_settings",
]
