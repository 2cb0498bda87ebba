"""Archivist CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from archivist.cli.index import index_cmd
from archivist.cli.init import init_cmd
from archivist.cli.reset import reset_cmd
from archivist.cli.search import search_cmd
from archivist.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("archivist")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"archivist {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="archivist",
    help=(
        "Archivist — semantic search over a mailing-list archive.\n\n"
        "  archivist index   Chunk and embed pending messages.\n"
        "  archivist search  Find messages by meaning."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Archivist — semantic search over a mailing-list archive."""


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("reset")(reset_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Archivist version."""
    typer.echo(f"archivist {_installed_version()}")


if __name__ == "__main__":
    app()
