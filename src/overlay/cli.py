"""CLI commands for inspecting and dry-running registered patches."""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .config import OverlaySettings, load_settings
from .patch import ApplyReport, Patch, RevertReport
from .registry import PatchRegistry
from .utils.naming import extract_name

APP_HELP = "Inspect and verify reversible attribute patches."

app = typer.Typer(help=APP_HELP)


def _load(config: Optional[Path]) -> OverlaySettings:
    try:
        settings = load_settings(config)
    except FileNotFoundError as error:
        raise typer.BadParameter(str(error)) from error
    except ValueError as error:
        typer.echo(f"Failed to load config: {error}")
        raise typer.Exit(code=1) from error
    logging.basicConfig(level=settings.log_level)
    return settings


def _import_modules(names: List[str]) -> None:
    """Import the modules whose import-time side effects register patches."""
    for name in names:
        try:
            importlib.import_module(name)
        except ImportError as error:
            typer.echo(f"  MISS  {name}: {error}")
            raise typer.Exit(code=1) from error


def _prepare(modules: List[str], config: Optional[Path]) -> tuple[OverlaySettings, PatchRegistry]:
    settings = _load(config)
    registry = Patch.registry
    registry.configure(settings)
    _import_modules([*settings.modules, *modules])
    return settings, registry


def _format_errors(report: ApplyReport | RevertReport) -> List[str]:
    return [f"        {error}" for _, error in report.errors]


@app.command("inspect")
def inspect_command(
    modules: Optional[List[str]] = typer.Argument(None, help="Modules to import before listing patches."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to overlay.yaml."),
) -> None:
    """List every registered patch grouped by owner."""
    _, registry = _prepare(list(modules or []), config)

    owners = registry.owners()
    if not owners:
        typer.echo("No patches registered.")
        return

    for owner in owners:
        typer.echo(f"{extract_name(owner)}:")
        for patch in registry.patches_for(owner):
            state = f"{patch.patches_applied}/{patch.patch_count} applied"
            conflicts = len(patch.patch_conflicts)
            typer.echo(f"- {patch!r} [{state}, {conflicts} conflict(s)]")
            for _, entry in patch.entries:
                live = "live" if patch.patch_state.get(entry) else "idle"
                typer.echo(f"    {entry!r} ({live})")


@app.command("check")
def check_command(
    modules: Optional[List[str]] = typer.Argument(None, help="Modules to import before checking patches."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to overlay.yaml."),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Also fail when a patch applies only partially (conditions not met).",
    ),
) -> None:
    """Apply then revert every registered patch and report anything unclean."""
    settings, registry = _prepare(list(modules or []), config)
    strict_mode = strict or settings.strict

    ok = True
    patches = registry.all_patches()
    if not patches:
        typer.echo("No patches registered.")
        return

    for patch in patches:
        if patch.applied:
            typer.echo(f"  SKIP  {patch!r}: already applied")
            continue

        applied = patch.apply()
        reverted = patch.revert() if patch.applied else None

        if applied.errors:
            ok = False
            typer.echo(f"  FAIL  {patch!r}: {len(applied.errors)} apply error(s)")
            for line in _format_errors(applied):
                typer.echo(line)
            if reverted is not None and not reverted.clean:
                for line in _format_errors(reverted):
                    typer.echo(line)
            continue

        if reverted is not None and not reverted.clean:
            ok = False
            typer.echo(
                f"  FAIL  {patch!r}: revert left {reverted.still_applied} applied, "
                f"restored {reverted.restored}/{reverted.conflicts}"
            )
            for line in _format_errors(reverted):
                typer.echo(line)
            continue

        if applied.not_applied:
            if strict_mode:
                ok = False
                typer.echo(f"  FAIL  {patch!r}: {applied.not_applied} key(s) not admitted")
            else:
                typer.echo(f"  PART  {patch!r}: {applied.applied}/{applied.patches} applied")
            continue

        typer.echo(f"  OK    {patch!r}: {applied.applied}/{applied.patches} applied and reverted")

    if not ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
