"""archivist init — project scaffold.

Creates:
  .archivist.db            — message store + vector index with schema
  vec_chunks_<model>       — vec0 table for the configured embedding model
  archivist.yaml           — project config with the defaults written out
  ~/.archivist/config.yaml — global model config (created once, mode 0o600)

Safe to re-run: existing data and config files are preserved.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from archivist.cli.errors import err_config
from archivist.config import ConfigError, ensure_global_config, load_config, write_project_config
from archivist.db.connection import DEFAULT_DB_NAME, Database
from archivist.db.schema import initialize
from archivist.db.vectors import VectorIndex

console = Console()

_DB_NAME = DEFAULT_DB_NAME


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
) -> None:
    """Initialize an Archivist project (database, vector index, config)."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    console.print(f"\n[bold]Initializing archivist in {project_dir} …[/]\n")

    db_path = project_dir / _DB_NAME
    existed = db_path.exists()
    with Database(db_path) as conn:
        initialize(conn)
        try:
            index = VectorIndex.create(conn, cfg.embedding.model, cfg.embedding.dimensions)
        except RuntimeError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)
    note = " (existing data preserved)" if existed else ""
    console.print(f"  [green]✓[/] {_DB_NAME}{note}")
    console.print(f"  [green]✓[/] {index.table} ({index.dimensions} dims, {index.model})")

    cfg_path = write_project_config(project_dir, cfg)
    console.print(f"  [green]✓[/] {cfg_path.name}")

    global_path = ensure_global_config()
    console.print(f"  [green]✓[/] {global_path} (global config)")

    console.print("\n[bold green]✓ Project initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. Import messages into .archivist.db")
    console.print("  2. archivist index            (chunk + embed pending messages)")
    console.print("  3. archivist search \"query\"   (find messages by meaning)")
