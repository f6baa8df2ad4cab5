#!/usr/bin/env python3
"""orgnet - organizing network graphs from rosters and meeting logs."""

import typer

from orgnet.commands import graph as graph_cmd
from orgnet.commands import mapping as mapping_cmd

app = typer.Typer(
    name="orgnet",
    help="Relationship graphs for organizing campaigns",
    add_completion=False,
)

graph_app = typer.Typer(help="Build, lay out and render networks")
app.add_typer(graph_app, name="graph")

mapping_app = typer.Typer(help="Manage organizer identity mappings")
app.add_typer(mapping_app, name="mapping")

graph_app.command("build")(graph_cmd.build)
graph_app.command("render")(graph_cmd.render)

mapping_app.command("list")(mapping_cmd.list_mappings)
mapping_app.command("ls")(mapping_cmd.list_mappings)
mapping_app.command("resolve")(mapping_cmd.resolve)
mapping_app.command("add-variant")(mapping_cmd.add_variant)
mapping_app.command("merge")(mapping_cmd.merge)
mapping_app.command("pending")(mapping_cmd.pending)


def main():
    app()


if __name__ == "__main__":
    main()
