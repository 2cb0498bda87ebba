"""Semantic message search: embed → nearest chunks → one hit per message.

The query is embedded with the same model the index was built with. Chunk
matches are deduplicated per message (best-ranked chunk wins), joined with
their message records, and returned in rank order regardless of the order
the store returns rows in.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from archivist.db.models import Message, SearchResult, VectorMatch
from archivist.db.repository import Repository
from archivist.db.vectors import VectorIndex
from archivist.ingest.embedding import EmbeddingClient

DEFAULT_TOP_K = 20


@dataclass
class SearchConfig:
    """Configuration for the search engine.

    Attributes:
        top_k: Nearest chunk entries requested from the index (before
            per-message deduplication, so at most this many results).
    """

    top_k: int = DEFAULT_TOP_K


class SearchEngine:
    """Request-scoped semantic search over indexed messages."""

    def __init__(
        self,
        repo: Repository,
        index: VectorIndex,
        embedder: EmbeddingClient,
        config: SearchConfig | None = None,
    ) -> None:
        if embedder.model != index.model:
            raise RuntimeError(
                f"Query model '{embedder.model}' does not match index model '{index.model}'."
            )
        self._repo = repo
        self._index = index
        self._embedder = embedder
        self._config = config or SearchConfig()

    def search(
        self,
        query: str,
        mailbox_id: str | None = None,
        top_k: int | None = None,
    ) -> list[SearchResult]:
        """Return messages matching *query*, best first.

        Args:
            query: Free-text query.
            mailbox_id: Restrict results to one mailbox.
            top_k: Override ``SearchConfig.top_k``.

        Raises:
            ValueError: If *query* is empty or blank.
        """
        if not query or not query.strip():
            raise ValueError("query must be a non-empty string")
        k = top_k if top_k is not None else self._config.top_k

        embedding = self._embedder.embed_one(query.strip())
        matches = self._index.query(embedding, top_k=k, mailbox_id=mailbox_id)
        unique = deduplicate(rank(matches))
        if not unique:
            return []

        messages = self._repo.fetch_by_ids(m.message_id for m in unique)
        return merge(unique, messages)


def rank(matches: Iterable[VectorMatch]) -> list[VectorMatch]:
    """Stable sort by ascending distance (best first).

    The index already returns this order; sorting keeps deduplication correct
    for backends that do not.
    """
    return sorted(matches, key=lambda m: m.distance)


def deduplicate(matches: Iterable[VectorMatch]) -> list[VectorMatch]:
    """Keep the first match per ``message_id``; matches without one are dropped."""
    seen: set[str] = set()
    unique: list[VectorMatch] = []
    for match in matches:
        message_id = match.message_id
        if message_id and message_id not in seen:
            seen.add(message_id)
            unique.append(match)
    return unique


def merge(matches: list[VectorMatch], messages: Iterable[Message]) -> list[SearchResult]:
    """Attach each match's message, preserving *matches* order.

    Matches whose message no longer exists are silently dropped.
    """
    by_id = {m.id: m for m in messages}
    results: list[SearchResult] = []
    for match in matches:
        message = by_id.get(match.message_id)
        if message is None:
            continue
        results.append(
            SearchResult(
                message=message,
                score=match.distance,
                matched_chunk=int(match.metadata.get("chunk_index", 0)),
            )
        )
    return results
