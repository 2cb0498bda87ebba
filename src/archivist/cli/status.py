"""archivist status command.

Shows the database, the configured embedding model and its vector index,
and per-mailbox indexing progress.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from archivist.config import ArchivistConfig, ConfigError, load_config
from archivist.db.connection import DEFAULT_DB_NAME, Database
from archivist.db.repository import MailboxStats, Repository
from archivist.db.schema import initialize, schema_version
from archivist.db.vectors import count_entries_by_mailbox, indexed_tables

console = Console()

_DEFAULT_DB = Path(DEFAULT_DB_NAME)


def status_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .archivist.db."),
    ] = _DEFAULT_DB,
) -> None:
    """Show archive status: mailboxes, embedded and pending messages, vectors."""
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  archivist init",
                title="[bold]Archive[/]",
                expand=False,
            )
        )
        return

    # Status works even with a broken archivist.yaml
    try:
        cfg = load_config(db.resolve().parent)
    except ConfigError:
        cfg = ArchivistConfig()

    database = Database(db, create=False)
    with database as conn:
        initialize(conn)
        repo = Repository(conn)
        _show_archive_panel(database, conn, cfg)
        _show_mailbox_panel(repo.mailbox_stats(), count_entries_by_mailbox(conn), cfg)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_archive_panel(
    database: Database, conn: sqlite3.Connection, cfg: ArchivistConfig
) -> None:
    size_mb = database.size_bytes() / (1024 * 1024)
    tables = indexed_tables(conn)

    lines = [
        f"Database:  {database.db_path} ({size_mb:.1f} MB, schema v{schema_version(conn)})",
        f"Model:     [bold]{cfg.embedding.model}[/] ({cfg.embedding.dimensions} dims)",
        f"Vec tables: [bold]{len(tables)}[/]",
    ]
    for name in tables:
        lines.append(f"  [dim]{name}[/]")

    console.print(Panel("\n".join(lines), title="[bold]Archive[/]", expand=False))


def _show_mailbox_panel(
    stats: list[MailboxStats], vectors: dict[str, int], cfg: ArchivistConfig
) -> None:
    if not stats:
        console.print(
            Panel(
                "[dim]No messages imported yet.[/]",
                title="[bold]Mailboxes[/]",
                expand=False,
            )
        )
        return

    allowed = set(cfg.indexing.lists)
    table = Table(box=None, padding=(0, 1))
    table.add_column("Mailbox", style="bold")
    table.add_column("Messages", justify="right")
    table.add_column("Embedded", justify="right")
    table.add_column("Pending", justify="right")
    table.add_column("Vectors", justify="right")

    for s in stats:
        name = s.mailbox_id if s.mailbox_id in allowed else f"[dim]{s.mailbox_id}[/]"
        pending = f"[yellow]{s.pending:,}[/]" if s.pending else "0"
        table.add_row(
            name,
            f"{s.total:,}",
            f"{s.embedded:,}",
            pending,
            f"{vectors.get(s.mailbox_id, 0):,}",
        )

    embedded = sum(s.embedded for s in stats)
    total = sum(s.total for s in stats)
    console.print(
        Panel(
            table,
            title=f"[bold]Mailboxes[/] [dim]({embedded:,}/{total:,} embedded)[/]",
            expand=False,
        )
    )
