"""Helpers shared by the CLI command modules."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.mapping_store import create_mapping_store
from orgnet.errors import OrgnetError
from orgnet.utils.config_loader import load_config as _load_config

console = Console()


def load_config(config_path: Path | None = None) -> dict:
    """Load configuration, failing loudly only when an explicit path is missing."""
    if config_path and not Path(config_path).exists():
        console.print(f"[red]Error: Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    return _load_config(config_path)


def setup_logging(config: dict, debug: bool = False):
    level = "DEBUG" if debug else str((config.get("logging") or {}).get("level", "WARNING")).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=debug, show_path=debug)],
        force=True,
    )


def read_json(path: Path, what: str) -> Any:
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] {what} file not found: {path}")
        raise typer.Exit(1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {what} file is not valid JSON ({path}): {e}")
        raise typer.Exit(1)


def open_resolver(config: dict) -> IdentityResolver:
    try:
        return IdentityResolver(create_mapping_store(config))
    except OrgnetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
