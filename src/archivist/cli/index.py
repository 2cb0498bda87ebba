"""archivist index — chunk and embed pending messages into the vector index.

Runs the resumable batch pipeline over the allow-listed mailing lists
(``--list``, else ``ARCHIVIST_LISTS``, else ``indexing.lists`` in
archivist.yaml). Interrupted or partially failed runs are picked up by the
next invocation; messages already indexed are never fetched again.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from archivist.cli.errors import (
    err_config,
    err_indexing_aborted,
    err_no_api_key,
    err_no_db,
    err_unknown_mailbox,
    warn_failed_messages,
)
from archivist.cli.log import configure_logging
from archivist.config import ConfigError, load_config
from archivist.db.connection import DEFAULT_DB_NAME, Database
from archivist.db.repository import Repository
from archivist.db.schema import initialize
from archivist.db.vectors import VectorIndex
from archivist.ingest.chunker import ChunkOptions, EmailChunker
from archivist.ingest.embedding import EmbeddingClient, provider_of
from archivist.ingest.pipeline import IndexingError, IndexingPipeline, IndexStats, PipelineConfig

console = Console()

_DEFAULT_DB = Path(DEFAULT_DB_NAME)


def index_cmd(
    lists: Annotated[
        list[str] | None,
        typer.Option("--list", "-l", help="Mailing list to index (repeatable)."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", min=1, help="Index at most this many messages."),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", min=1, help="Messages fetched per batch."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Chunk and embed, but write nothing to the index."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .archivist.db."),
    ] = _DEFAULT_DB,
) -> None:
    """Embed pending messages from the selected mailing lists."""
    configure_logging(verbose, console=console)

    if not db.exists():
        console.print(err_no_db(str(db)))
        raise typer.Exit(1)

    try:
        cfg = load_config(db.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    mailbox_ids = list(lists) if lists else list(cfg.indexing.lists)
    embedder = EmbeddingClient(model=cfg.embedding.model)
    try:
        embedder.validate_api_key()
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(embedder.model)))
        raise typer.Exit(1)

    with Database(db, create=False) as conn:
        initialize(conn)
        repo = Repository(conn)

        if lists:
            known = repo.list_mailboxes()
            unknown = [name for name in mailbox_ids if name not in known]
            if unknown:
                console.print(err_unknown_mailbox(unknown, known))
                raise typer.Exit(1)

        try:
            index = VectorIndex.create(conn, cfg.embedding.model, cfg.embedding.dimensions)
        except RuntimeError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)

        pending = sum(s.pending for s in repo.mailbox_stats() if s.mailbox_id in mailbox_ids)
        total = min(pending, limit) if limit is not None else pending
        console.print(
            f"\n[bold]→ Indexing {total} pending message(s)[/] "
            f"[dim]({', '.join(mailbox_ids)})[/]"
        )

        pipeline_config = PipelineConfig(
            mailbox_ids=mailbox_ids,
            batch_size=batch_size or cfg.indexing.batch_size,
            upsert_batch_size=cfg.indexing.upsert_batch_size,
            concurrency=cfg.indexing.concurrency,
            dry_run=dry_run,
        )
        chunker = EmailChunker(ChunkOptions.from_config(cfg.chunker, cfg.embedding.model))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Embedding…", total=total or None)

            def _advance(stats: IndexStats) -> None:
                prog.update(task, completed=stats.fetched)

            pipeline = IndexingPipeline(
                repo,
                index,
                embedder,
                chunker=chunker,
                config=pipeline_config,
                on_batch=_advance,
            )
            try:
                stats = pipeline.run(limit=limit)
            except IndexingError as exc:
                prog.stop()
                reason = str(exc.__cause__ or exc)
                console.print(err_indexing_aborted(reason, exc.stats.processed, exc.stats.failed))
                raise typer.Exit(1)

    _print_summary(stats, dry_run)


def _print_summary(stats: IndexStats, dry_run: bool) -> None:
    console.print(
        f"  [green]✓[/] {stats.processed} processed  |  "
        f"{stats.chunks} chunks  |  "
        f"{stats.too_short} too short  |  "
        f"{stats.failed} failed"
    )
    if dry_run:
        console.print(
            f"  [dim]Dry run — {len(stats.entries)} vector entries computed, nothing written[/]"
        )
    if stats.failed:
        console.print(warn_failed_messages(stats.failed))
