"""archivist search — find messages by meaning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from archivist.cli.errors import (
    err_config,
    err_embedding_model_mismatch,
    err_no_api_key,
    err_no_db,
)
from archivist.config import ConfigError, load_config
from archivist.db.connection import DEFAULT_DB_NAME, Database
from archivist.db.models import SearchResult
from archivist.db.repository import Repository
from archivist.db.schema import initialize
from archivist.db.vectors import VectorIndex, indexed_tables
from archivist.ingest.embedding import EmbeddingClient, EmbeddingError, provider_of
from archivist.rag.search import SearchConfig, SearchEngine

console = Console()

_DEFAULT_DB = Path(DEFAULT_DB_NAME)
_SUBJECT_WIDTH = 60


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    mailbox: Annotated[
        str | None,
        typer.Option("--list", "-l", help="Only search this mailing list."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Nearest chunks to consider."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .archivist.db."),
    ] = _DEFAULT_DB,
) -> None:
    """Search indexed messages; one row per message, best match first."""
    if not query.strip():
        console.print("[red]Error:[/] Query must not be empty.")
        raise typer.Exit(1)

    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    try:
        cfg = load_config(db.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    embedder = EmbeddingClient(model=cfg.embedding.model)
    try:
        embedder.validate_api_key()
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(embedder.model)))
        raise typer.Exit(1)

    with Database(db, create=False) as conn:
        initialize(conn)
        try:
            index = VectorIndex.open(conn, cfg.embedding.model)
        except RuntimeError:
            console.print(err_embedding_model_mismatch(cfg.embedding.model, indexed_tables(conn)))
            raise typer.Exit(1)

        engine = SearchEngine(
            Repository(conn), index, embedder, SearchConfig(top_k=cfg.search.top_k)
        )
        try:
            results = engine.search(query, mailbox_id=mailbox, top_k=top_k)
        except EmbeddingError as exc:
            console.print(f"[red]Error:[/] Could not embed the query: {exc}")
            raise typer.Exit(1)

    if not results:
        console.print("[yellow]No matching messages.[/]")
        return
    console.print(_results_table(query, results))


def _results_table(query: str, results: list[SearchResult]) -> Table:
    table = Table(title=f"Results for: {escape(query)}", title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("List", style="cyan")
    table.add_column("Date", style="dim")
    table.add_column("From")
    table.add_column("Subject")
    table.add_column("Chunk", justify="right", style="dim")

    for rank, result in enumerate(results, start=1):
        msg = result.message
        subject = msg.subject or "(no subject)"
        if len(subject) > _SUBJECT_WIDTH:
            subject = subject[: _SUBJECT_WIDTH - 1] + "…"
        table.add_row(
            str(rank),
            f"{result.score:.4f}",
            escape(msg.mailbox_id),
            (msg.ts or "")[:10],
            escape(msg.from_email or ""),
            escape(subject),
            str(result.matched_chunk),
        )
    return table
