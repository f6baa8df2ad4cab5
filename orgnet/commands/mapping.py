"""Organizer-mapping commands for the orgnet CLI."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.table import Table

from orgnet.commands.common import console, load_config, open_resolver, setup_logging
from orgnet.errors import OrgnetError


def _resolver(config_path: Path | None, debug: bool = False):
    config = load_config(config_path)
    setup_logging(config, debug)
    return open_resolver(config)


def list_mappings(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List organizer mappings."""
    resolver = _resolver(config_path)
    mappings = resolver.mappings
    if output_json:
        console.print_json(json.dumps([m.model_dump() for m in mappings]))
        return
    if not mappings:
        console.print("[dim]No organizer mappings.[/dim]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Primary id", style="cyan")
    table.add_column("Preferred name", style="white")
    table.add_column("Alternate ids", style="dim")
    table.add_column("Name variants", style="dim")
    table.add_column("Merged from", style="yellow")
    for m in sorted(mappings, key=lambda m: m.preferred_name.lower()):
        table.add_row(
            m.primary_id,
            m.preferred_name,
            ", ".join(m.alternate_ids),
            ", ".join(m.name_variants),
            ", ".join(m.merged_from_ids),
        )
    console.print(table)


def resolve(
    token: str = typer.Argument(..., help="Raw id or name spelling"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Show which person a raw id or name resolves to."""
    mapping = _resolver(config_path).resolve(token)
    if mapping is None:
        console.print(f"[yellow]'{token}' does not resolve to any mapping.[/yellow]")
        raise typer.Exit(1)
    console.print(f"[cyan]{token}[/cyan] -> [bold]{mapping.preferred_name}[/bold] ({mapping.primary_id})")


def add_variant(
    primary_id: str = typer.Argument(..., help="Canonical person id"),
    token: str = typer.Argument(..., help="Alternate id or name spelling"),
    is_id: bool = typer.Option(False, "--id", help="Token is an alternate id rather than a name"),
    name: str | None = typer.Option(None, "--name", help="Preferred name when the mapping is created"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Record an alternate id or name spelling for a person."""
    resolver = _resolver(config_path)
    try:
        mapping = resolver.add_variant(primary_id, token, is_id, name)
    except OrgnetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    field = "alternate ids" if is_id else "name variants"
    values = mapping.alternate_ids if is_id else mapping.name_variants
    console.print(f"[green]{mapping.preferred_name}[/green] ({mapping.primary_id}) {field}: {', '.join(values) or '-'}")


def merge(
    primary_id: str = typer.Argument(..., help="Id of the surviving record"),
    merge_id: str = typer.Argument(..., help="Id of the record to fold in and delete"),
    force: bool = typer.Option(False, "--force", "-f", help="Merge without confirmation"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Merge two people; the first id survives."""
    resolver = _resolver(config_path)
    if not force:
        other = resolver.get(merge_id)
        label = other.preferred_name if other else merge_id
        if not typer.confirm(f"Fold '{label}' ({merge_id}) into {primary_id}? This deletes {merge_id}"):
            console.print("[dim]Aborted.[/dim]")
            raise typer.Exit(1)
    try:
        merged = resolver.merge(primary_id, merge_id)
    except OrgnetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(
        f"[green]Merged[/green] {merge_id} into [bold]{merged.preferred_name}[/bold] ({merged.primary_id}); "
        f"merged from: {', '.join(merged.merged_from_ids)}"
    )


def pending(
    name: str = typer.Argument(..., help="Full name of the new person"),
    person_type: str = typer.Option("constituent", "--type", help="Person type"),
    chapter: str | None = typer.Option(None, "--chapter", help="Chapter"),
    email: str | None = typer.Option(None, "--email", help="Email"),
    phone: str | None = typer.Option(None, "--phone", help="Phone"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """Register a person who has no voter-file id yet."""
    resolver = _resolver(config_path)
    try:
        new_id = resolver.create_pending(name, person_type, source="cli", chapter=chapter, email=email, phone=phone)
    except OrgnetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Created[/green] pending person {name} with id [cyan]{new_id}[/cyan]")
