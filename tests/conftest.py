from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from overlay.patch import Patch  # noqa: E402
from overlay.registry import PatchRegistry  # noqa: E402


@pytest.fixture(autouse=True)
def registry(monkeypatch: pytest.MonkeyPatch) -> PatchRegistry:
    """Give every test its own registry so patches never leak between tests."""

    fresh = PatchRegistry(telemetry=False)
    monkeypatch.setattr(Patch, "registry", fresh)
    return fresh


@pytest.fixture()
def patch_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[[str, str], str]:
    """Write an importable module whose import registers patches."""

    package_dir = tmp_path / "patch_modules"
    package_dir.mkdir()
    monkeypatch.syspath_prepend(str(package_dir))

    def write(name: str, body: str) -> str:
        (package_dir / f"{name}.py").write_text(textwrap.dedent(body).lstrip(), encoding="utf-8")
        monkeypatch.delitem(sys.modules, name, raising=False)
        return name

    return write
