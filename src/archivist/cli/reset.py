"""archivist reset — mark a mailing list for re-embedding.

Clears the ``embedded_at`` marker of every message in the list so the next
``archivist index`` embeds them again. Stored vectors are kept; chunk keys
are deterministic, so re-indexing overwrites them in place.

Usage:
  archivist reset --list pgsql-hackers
  archivist reset --list pgsql-hackers --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from archivist.cli.errors import err_no_db, err_unknown_mailbox
from archivist.db.connection import DEFAULT_DB_NAME, Database
from archivist.db.repository import Repository
from archivist.db.schema import initialize

console = Console()

_DEFAULT_DB = Path(DEFAULT_DB_NAME)


def reset_cmd(
    mailbox: Annotated[
        str,
        typer.Option("--list", "-l", help="Mailing list to reset."),
    ],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .archivist.db."),
    ] = _DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Clear the indexed marker for a mailing list so it is re-embedded."""
    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    with Database(db, create=False) as conn:
        initialize(conn)
        repo = Repository(conn)

        known = repo.list_mailboxes()
        if mailbox not in known:
            console.print(err_unknown_mailbox([mailbox], known))
            raise typer.Exit(1)

        stats = next(s for s in repo.mailbox_stats() if s.mailbox_id == mailbox)
        console.print(f"\nReset list: [bold]{mailbox}[/]")
        console.print(f"  Messages: {stats.total}  |  Embedded: {stats.embedded}")

        if stats.embedded == 0:
            console.print("[dim]Nothing to reset.[/]")
            return

        if not yes:
            if not typer.confirm("Confirm reset?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        count = repo.reset_embedded(mailbox)

    console.print(f"\n[green]✓[/] {count} message(s) will be re-embedded on the next run.")
    console.print("  Run:  archivist index --list " + mailbox)
