"""Configuration models for patch options and the overlay runtime.

Two layers are configured here:

``PatchOptions``
    Per-patch options (conditions and display name).  Callers usually pass a
    plain mapping which is validated through a pydantic ``TypeAdapter``.

``OverlaySettings``
    Process level settings read from YAML: telemetry, the log level used by
    the CLI, the modules whose import registers patches, and strict checking.
    The file is ``overlay.yaml`` in the working directory unless
    ``OVERLAY_CONFIG`` points elsewhere.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.type_adapter import TypeAdapter

DEFAULT_CONFIG_NAME = "overlay.yaml"
CONFIG_ENV_VAR = "OVERLAY_CONFIG"


class PatchOptions(BaseModel):
    """Options accepted by ``Patch``.

    ``condition`` gates every key; ``conditions`` overrides it per key.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    condition: Optional[Callable[[], Any]] = None
    conditions: Dict[str, Callable[[], Any]] = Field(default_factory=dict)
    display_name: Optional[str] = None

    def condition_for(self, key: Any) -> Callable[[], Any] | None:
        """Resolve the gate for ``key``: per-key override, then the patch-wide one."""
        if isinstance(key, str):
            override = self.conditions.get(key)
            if override is not None:
                return override
        return self.condition


class OverlaySettings(BaseModel):
    """Runtime settings loaded from ``overlay.yaml``."""

    model_config = ConfigDict(extra="forbid")

    telemetry: bool = True
    log_level: str = "WARNING"
    modules: List[str] = Field(default_factory=list)
    strict: bool = False

    @field_validator("log_level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{value}'")
        return level


def coerce_options(options: PatchOptions | Mapping[str, Any] | None) -> PatchOptions:
    """Validate ``options`` into a ``PatchOptions`` instance."""
    if options is None:
        return PatchOptions()
    if isinstance(options, PatchOptions):
        return options

    adapter = TypeAdapter(PatchOptions)
    try:
        return adapter.validate_python(dict(options))
    except (TypeError, ValueError, ValidationError) as error:
        raise ValueError(f"Patch options did not validate: {error}") from error


def _resolve_config_path(config_path: Path | str | None) -> Path | None:
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path
    env_value = os.getenv(CONFIG_ENV_VAR)
    if env_value:
        path = Path(env_value)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path} (from {CONFIG_ENV_VAR})")
        return path
    candidate = Path.cwd() / DEFAULT_CONFIG_NAME
    return candidate if candidate.exists() else None


def load_settings(config_path: Path | str | None = None) -> OverlaySettings:
    """Load ``OverlaySettings`` from YAML, falling back to defaults when absent."""
    path = _resolve_config_path(config_path)
    if path is None:
        return OverlaySettings()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ValueError(f"Failed to parse config {path}: {error}") from error

    if not isinstance(data, Mapping):
        raise ValueError(f"Expected mapping at top level of {path}")

    try:
        return OverlaySettings.model_validate(dict(data))
    except ValidationError as error:
        raise ValueError(f"Config {path} did not validate: {error}") from error


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_NAME",
    "OverlaySettings",
    "PatchOptions",
    "coerce_options",
    "load_settings",
]
