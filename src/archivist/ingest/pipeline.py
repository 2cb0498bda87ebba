"""Resumable batch indexing: messages → chunks → embeddings → vector index.

Each batch runs FETCH → CHUNK → EMBED → UPSERT → MARK:

- FETCH   up to ``batch_size`` unmarked messages from the allow-listed
          mailboxes, newest first.
- CHUNK   every body in memory. Messages yielding no chunks are terminal
          ("too short") and are marked without vectors.
- EMBED   one request per message, ``concurrency`` in flight. A message whose
          embedding fails is logged and left unmarked for the next run.
- UPSERT  entries keyed by ``chunk_id()`` in ``upsert_batch_size`` slices;
          an existing key is overwritten, never duplicated.
- MARK    every message that was upserted or too short, in one update.

Marking strictly follows a successful upsert, so a crash anywhere leaves the
unfinished tail unmarked and a re-run picks it up. Infrastructure errors
abort the run with ``IndexingError`` carrying the counts reached so far.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from archivist.db.models import Chunk, Message, VectorEntry
from archivist.db.repository import Repository
from archivist.db.vectors import VectorIndex
from archivist.ingest.chunker import EmailChunker
from archivist.ingest.embedding import EmbeddingClient, EmbeddingError

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
UPSERT_BATCH_SIZE = 250
EMBED_CONCURRENCY = 5


@dataclass
class PipelineConfig:
    """Run parameters for ``IndexingPipeline``.

    Attributes:
        mailbox_ids: Allow-list of mailboxes to index.
        batch_size: Messages fetched per batch.
        upsert_batch_size: Vector entries per upsert call.
        concurrency: Embedding requests in flight within one batch.
        dry_run: Embed but skip UPSERT and MARK; entries are returned in
            ``IndexStats.entries`` instead.
    """

    mailbox_ids: list[str] = field(default_factory=list)
    batch_size: int = BATCH_SIZE
    upsert_batch_size: int = UPSERT_BATCH_SIZE
    concurrency: int = EMBED_CONCURRENCY
    dry_run: bool = False

    def __post_init__(self) -> None:
        for name in ("batch_size", "upsert_batch_size", "concurrency"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")


@dataclass
class IndexStats:
    """Counters for one ``IndexingPipeline.run()``.

    ``processed`` counts messages that are done for good (vectors stored, or
    too short to index); ``failed`` counts messages left for the next run.
    """

    batches: int = 0
    fetched: int = 0
    processed: int = 0
    too_short: int = 0
    failed: int = 0
    chunks: int = 0
    upserted: int = 0
    failed_ids: list[str] = field(default_factory=list)
    entries: list[VectorEntry] = field(default_factory=list)


class IndexingError(RuntimeError):
    """Fatal failure during a run. ``stats`` holds the progress made before it."""

    def __init__(self, message: str, stats: IndexStats) -> None:
        super().__init__(message)
        self.stats = stats


class IndexingPipeline:
    """Drive batches until the budget is spent or nothing is left to index.

    Args:
        repo: Message store.
        index: Vector index the entries are upserted into.
        embedder: Embedding client (same model the index was created for).
        chunker: Chunker; defaults to the standard token budgets.
        config: Run parameters.
        on_batch: Called with the running stats after every batch.
    """

    def __init__(
        self,
        repo: Repository,
        index: VectorIndex,
        embedder: EmbeddingClient,
        chunker: EmailChunker | None = None,
        config: PipelineConfig | None = None,
        on_batch: Callable[[IndexStats], None] | None = None,
    ) -> None:
        self._repo = repo
        self._index = index
        self._embedder = embedder
        self._chunker = chunker or EmailChunker()
        self._config = config or PipelineConfig()
        self._on_batch = on_batch

    def run(self, limit: int | None = None) -> IndexStats:
        """Index up to *limit* messages (all pending ones if None).

        Raises:
            IndexingError: On any store, vector index or transport failure.
        """
        if limit is not None and limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")

        cfg = self._config
        stats = IndexStats()
        # Messages handled this run but left unmarked (failures, dry run).
        skipped: set[str] = set()
        remaining = limit

        try:
            while remaining is None or remaining > 0:
                size = cfg.batch_size if remaining is None else min(cfg.batch_size, remaining)
                messages = self._repo.fetch_unembedded(cfg.mailbox_ids, size, exclude_ids=skipped)
                if not messages:
                    break
                self._process_batch(messages, stats, skipped)
                if remaining is not None:
                    remaining -= len(messages)
                if self._on_batch is not None:
                    self._on_batch(stats)
        except IndexingError:
            raise
        except Exception as exc:
            raise IndexingError(
                f"Indexing aborted after {stats.processed} messages: {exc}", stats
            ) from exc

        logger.info(
            "Indexing finished: %d processed, %d chunks, %d too short, %d failed",
            stats.processed,
            stats.chunks,
            stats.too_short,
            stats.failed,
        )
        return stats

    # ------------------------------------------------------------------
    # One batch
    # ------------------------------------------------------------------

    def _process_batch(
        self, messages: list[Message], stats: IndexStats, skipped: set[str]
    ) -> None:
        stats.batches += 1
        stats.fetched += len(messages)
        logger.debug("Batch %d: %d messages", stats.batches, len(messages))

        # CHUNK
        too_short: list[str] = []
        pending: list[tuple[Message, list[Chunk]]] = []
        for message in messages:
            chunks = self._chunker.chunk_message(message)
            if chunks:
                pending.append((message, chunks))
            else:
                too_short.append(message.id)
        stats.too_short += len(too_short)

        # EMBED
        embedded_ids, entries = self._embed(pending, stats, skipped)
        stats.chunks += len(entries)

        if self._config.dry_run:
            stats.entries.extend(entries)
            stats.processed += len(too_short) + len(embedded_ids)
            skipped.update(m.id for m in messages)
            return

        # UPSERT
        for batch in _slices(entries, self._config.upsert_batch_size):
            stats.upserted += self._index.upsert(batch)

        # MARK
        done = too_short + embedded_ids
        self._repo.mark_embedded(done)
        stats.processed += len(done)

    def _embed(
        self,
        pending: list[tuple[Message, list[Chunk]]],
        stats: IndexStats,
        skipped: set[str],
    ) -> tuple[list[str], list[VectorEntry]]:
        """Embed each message's chunks concurrently; isolate per-message failures.

        Returns the ids of messages embedded successfully and their entries,
        both in fetch order.
        """
        if not pending:
            return [], []

        vectors: dict[str, list[list[float]]] = {}
        workers = min(self._config.concurrency, len(pending))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: dict[Future, tuple[Message, list[Chunk]]] = {
                executor.submit(self._embedder.embed, [c.text for c in chunks]): (message, chunks)
                for message, chunks in pending
            }
            for future in as_completed(futures):
                message, chunks = futures[future]
                try:
                    result = future.result()
                except EmbeddingError as exc:
                    self._record_failure(message.id, str(exc), stats, skipped)
                    continue
                except Exception:
                    for other in futures:
                        other.cancel()
                    raise
                if len(result) != len(chunks):
                    self._record_failure(
                        message.id,
                        f"got {len(result)} vectors for {len(chunks)} chunks",
                        stats,
                        skipped,
                    )
                    continue
                vectors[message.id] = result

        embedded_ids: list[str] = []
        entries: list[VectorEntry] = []
        for message, chunks in pending:
            if message.id not in vectors:
                continue
            embedded_ids.append(message.id)
            entries.extend(
                VectorEntry.from_chunk(chunk, vector, self._embedder.model)
                for chunk, vector in zip(chunks, vectors[message.id])
            )
        return embedded_ids, entries

    @staticmethod
    def _record_failure(
        message_id: str, reason: str, stats: IndexStats, skipped: set[str]
    ) -> None:
        logger.warning("Embedding failed for message %s: %s", message_id, reason)
        stats.failed += 1
        stats.failed_ids.append(message_id)
        skipped.add(message_id)


def _slices(items: Sequence, size: int):
    for i in range(0, len(items), size):
        yield items[i : i + size]
