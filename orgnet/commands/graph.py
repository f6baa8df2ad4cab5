"""Graph building and rendering commands for the orgnet CLI."""

from __future__ import annotations

import json
import random
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from orgnet.analysis.engagement import parse_buckets
from orgnet.analysis.graph_builder import GraphBuilder, NetworkView
from orgnet.analysis.link_aggregator import LinkAggregator
from orgnet.analysis.name_merge import DEFAULT_NAME_VARIATIONS, NameMergeCache
from orgnet.commands.common import console, load_config, open_resolver, read_json, setup_logging
from orgnet.errors import OrgnetError
from orgnet.simulation.force_engine import ForceSimulationEngine
from orgnet.utils.config_loader import simulation_settings
from orgnet.visualization.session import GraphSession

progress_console = Console(file=sys.stderr)


def _buckets(loe: list[str] | None):
    if not loe:
        return None
    try:
        return parse_buckets(loe)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _variations(config: dict) -> dict[str, str]:
    table = dict(DEFAULT_NAME_VARIATIONS)
    table.update({str(k).lower(): str(v).lower() for k, v in (config.get("name_variations") or {}).items()})
    return table


def _summary(nodes, edges, title: str):
    by_type: dict[str, int] = {}
    for n in nodes:
        by_type[n.type] = by_type.get(n.type, 0) + 1
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Node type", style="white")
    table.add_column("Count", justify="right")
    for node_type, count in sorted(by_type.items()):
        table.add_row(node_type, str(count))
    table.add_row("[dim]edges[/dim]", f"[dim]{len(edges)}[/dim]")
    console.print(table)


def build(
    teams_file: Path = typer.Argument(..., help="JSON file with team rosters"),
    meetings_file: Path = typer.Argument(..., help="JSON file with meeting logs"),
    view: NetworkView = typer.Option(NetworkView.CONNECTIONS, "--view", "-v", help="Graph view"),
    loe: list[str] = typer.Option(None, "--loe", help="Engagement buckets to keep (by-loe view, repeatable)"),
    chapter: str | None = typer.Option(None, "--chapter", help="Scope to one chapter"),
    start_date: str | None = typer.Option(None, "--start", help="First meeting date (YYYY-MM-DD)"),
    end_date: str | None = typer.Option(None, "--end", help="Last meeting date (YYYY-MM-DD)"),
    out: Path = typer.Option(Path("graph.json"), "--out", "-o", help="Output JSON path"),
    layout: bool = typer.Option(True, "--layout/--no-layout", help="Run the force layout before writing"),
    max_ticks: int | None = typer.Option(None, "--max-ticks", help="Stop the layout after this many ticks"),
    seed: int | None = typer.Option(None, "--seed", help="Random seed for reproducible layouts"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Build, aggregate and lay out a network; write nodes and edges as JSON."""
    config = load_config(config_path)
    setup_logging(config, debug)
    teams = read_json(teams_file, "Teams")
    meetings = read_json(meetings_file, "Meetings")
    rng = random.Random(seed)

    try:
        builder = GraphBuilder(
            resolver=open_resolver(config), merge_cache=NameMergeCache(_variations(config)), rng=rng
        )
        graph = builder.build(view, teams, meetings, _buckets(loe), chapter, start_date, end_date)
        edges = LinkAggregator().aggregate(graph.edges, graph.nodes)

        ticks = 0
        if layout and graph.nodes:
            engine = ForceSimulationEngine(graph.nodes, edges, simulation_settings(config), rng=rng)
            with Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]Layout[/bold blue]"),
                BarColumn(),
                TextColumn("alpha {task.fields[alpha]:.3f}"),
                console=progress_console,
                transient=True,
            ) as progress:
                task = progress.add_task("layout", total=None, alpha=engine.alpha)
                while engine.running and (max_ticks is None or ticks < max_ticks):
                    engine.step()
                    ticks += 1
                    progress.update(task, advance=1, alpha=engine.alpha)
            engine.stop(flush=False)
    except OrgnetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    payload = {
        "view": NetworkView(view).value,
        "nodes": [n.to_dict() for n in graph.nodes],
        "edges": [e.to_dict() for e in edges],
        "team_centers": graph.to_dict()["team_centers"],
        "ticks": ticks,
    }
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w") as f:
        json.dump(payload, f, indent=2)

    _summary(graph.nodes, edges, f"{NetworkView(view).value} view")
    console.print(f"[green]Wrote[/green] {out} [dim]({ticks} layout ticks)[/dim]")


def render(
    teams_file: Path = typer.Argument(..., help="JSON file with team rosters"),
    meetings_file: Path = typer.Argument(..., help="JSON file with meeting logs"),
    view: NetworkView = typer.Option(NetworkView.CONNECTIONS, "--view", "-v", help="Graph view"),
    loe: list[str] = typer.Option(None, "--loe", help="Engagement buckets to keep (by-loe view, repeatable)"),
    chapter: str | None = typer.Option(None, "--chapter", help="Scope to one chapter"),
    search: str | None = typer.Option(None, "--search", "-s", help="Highlight nodes matching this text"),
    select: str | None = typer.Option(None, "--select", help="Node id to draw as selected"),
    color_mode: str = typer.Option("chapter", "--color-mode", help="chapter or loe"),
    width: int | None = typer.Option(None, "--width", help="Image width in CSS pixels"),
    height: int | None = typer.Option(None, "--height", help="Image height in CSS pixels"),
    out: Path = typer.Option(Path("graph.png"), "--out", "-o", help="Output PNG path"),
    max_ticks: int | None = typer.Option(None, "--max-ticks", help="Stop the layout after this many ticks"),
    seed: int | None = typer.Option(None, "--seed", help="Random seed for reproducible layouts"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Lay out a network and paint it to a PNG."""
    config = load_config(config_path)
    setup_logging(config, debug)
    if width or height:
        render_cfg = dict(config.get("render") or {})
        if width:
            render_cfg["width"] = width
        if height:
            render_cfg["height"] = height
        config = {**config, "render": render_cfg}
    teams = read_json(teams_file, "Teams")
    meetings = read_json(meetings_file, "Meetings")

    try:
        session = GraphSession(config, resolver=open_resolver(config), rng=random.Random(seed))
        session.color_mode = color_mode
        session.search_text = search or ""
        session.selected_node_id = select
        session.load(view, teams, meetings, _buckets(loe), chapter)
        with progress_console.status("[bold blue]Running layout...[/bold blue]"):
            ticks = session.run(max_ticks)
        frame = session.render()
        session.close()
        if frame is None:
            console.print("[yellow]Nothing to render: the graph is empty.[/yellow]")
            raise typer.Exit(1)
        out.parent.mkdir(parents=True, exist_ok=True)
        session.canvas.save(out)
    except OrgnetError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    _summary(session.nodes, session.edges, f"{NetworkView(view).value} view")
    if search:
        console.print(f"[cyan]Search '{search}':[/cyan] {len(frame.matched)} match(es)")
    console.print(f"[green]Wrote[/green] {out} [dim]({ticks} layout ticks)[/dim]")
