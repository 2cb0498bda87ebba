"""Per-model sqlite-vec vector index keyed by deterministic chunk ids.

Each embedding model gets its own vec0 virtual table (``vec_chunks_<slug>``).
vec0 rows are addressed by integer rowid, so the ``vector_entries`` table maps
the string chunk key to that rowid and carries the denormalized metadata used
for filtering and for joining matches back to messages.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Sequence

from archivist.db.models import VectorEntry, VectorMatch

_DIMENSIONS_RE = re.compile(r"float\[(\d+)\]")

_ENTRY_COLUMNS = (
    "key, vec_rowid, message_id, mailbox_id, chunk_index, subject, from_email, ts, embedding_model"
)


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "ollama/nomic-embed-text" -> "ollama_nomic_embed_text"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_chunks_{model_slug}).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    if table_dimensions(conn, table) is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
        )
        conn.commit()

    return table


def table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the declared vector width of *table*, or None if it does not exist."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    if row is None:
        return None
    match = _DIMENSIONS_RE.search(row[0] or "")
    return int(match.group(1)) if match else None


class VectorIndex:
    """Upsert/query access to one model's vec table.

    Use ``VectorIndex.create()`` when indexing (creates the table on first
    use) and ``VectorIndex.open()`` when searching (fails if nothing was ever
    indexed with that model).
    """

    def __init__(self, conn: sqlite3.Connection, table: str, model: str, dimensions: int) -> None:
        self._conn = conn
        self.table = table
        self.model = model
        self.dimensions = dimensions

    @classmethod
    def create(cls, conn: sqlite3.Connection, model: str, dimensions: int) -> VectorIndex:
        table = ensure_vec_table(conn, model_to_slug(model), dimensions)
        existing = table_dimensions(conn, table)
        if existing != dimensions:
            raise RuntimeError(
                f"Vector table '{table}' stores {existing}-dimensional vectors, "
                f"but {dimensions} were configured for '{model}'."
            )
        return cls(conn, table, model, dimensions)

    @classmethod
    def open(cls, conn: sqlite3.Connection, model: str) -> VectorIndex:
        """Open the existing vec table for *model*.

        Raises:
            RuntimeError: If nothing has been indexed with *model* yet.
        """
        table = vec_table_name(model_to_slug(model))
        dimensions = table_dimensions(conn, table)
        if dimensions is None:
            raise RuntimeError(
                f"No embeddings found for model '{model}'. "
                "Run 'archivist index' first to populate the vector index."
            )
        return cls(conn, table, model, dimensions)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, entries: Sequence[VectorEntry]) -> int:
        """Write *entries* in one transaction; an existing key is overwritten.

        Raises:
            ValueError: If any embedding has the wrong width. Nothing from the
                call is written in that case.

        Returns:
            Number of entries written.
        """
        for entry in entries:
            if len(entry.embedding) != self.dimensions:
                raise ValueError(
                    f"Vector for '{entry.key}' has {len(entry.embedding)} dimensions, "
                    f"index '{self.table}' expects {self.dimensions}."
                )
        if not entries:
            return 0

        with self._conn:
            next_rowid = self._conn.execute(
                "SELECT COALESCE(MAX(vec_rowid), 0) + 1 FROM vector_entries WHERE vec_table = ?",
                (self.table,),
            ).fetchone()[0]
            for entry in entries:
                row = self._conn.execute(
                    "SELECT vec_rowid FROM vector_entries WHERE key = ? AND vec_table = ?",
                    (entry.key, self.table),
                ).fetchone()
                if row is not None:
                    rowid = row["vec_rowid"]
                    self._conn.execute(f"DELETE FROM {self.table} WHERE rowid = ?", (rowid,))
                else:
                    rowid = next_rowid
                    next_rowid += 1
                self._conn.execute(
                    f"INSERT INTO {self.table}(rowid, embedding) VALUES (?, ?)",
                    (rowid, _to_json(entry.embedding)),
                )
                meta = entry.metadata
                self._conn.execute(
                    """
                    INSERT INTO vector_entries (
                        key, vec_table, vec_rowid, message_id, mailbox_id, chunk_index,
                        subject, from_email, ts, embedding_model
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(vec_table, key) DO UPDATE SET
                        vec_rowid = excluded.vec_rowid,
                        message_id = excluded.message_id,
                        mailbox_id = excluded.mailbox_id,
                        chunk_index = excluded.chunk_index,
                        subject = excluded.subject,
                        from_email = excluded.from_email,
                        ts = excluded.ts,
                        embedding_model = excluded.embedding_model,
                        updated_at = datetime('now')
                    """,
                    (
                        entry.key,
                        self.table,
                        rowid,
                        meta.get("message_id", ""),
                        meta.get("mailbox_id", ""),
                        int(meta.get("chunk_index", 0)),
                        meta.get("subject", ""),
                        meta.get("from_email", ""),
                        meta.get("ts", ""),
                        meta.get("embedding_model", self.model),
                    ),
                )
        return len(entries)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self, embedding: list[float], top_k: int = 20, mailbox_id: str | None = None
    ) -> list[VectorMatch]:
        """Nearest-neighbour search, ascending by distance (best first).

        Args:
            embedding: Query vector (same model/width as the index).
            top_k: Maximum number of matches.
            mailbox_id: Restrict matches to entries from this mailbox.
        """
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        if mailbox_id is not None:
            return self._query_mailbox(embedding, top_k, mailbox_id)

        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {self.table} WHERE embedding MATCH ? "
            "ORDER BY distance LIMIT ?",
            (_to_json(embedding), top_k),
        ).fetchall()
        if not vec_rows:
            return []

        rowids = [r["rowid"] for r in vec_rows]
        placeholders = ",".join("?" * len(rowids))
        meta_rows = self._conn.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM vector_entries "
            f"WHERE vec_table = ? AND vec_rowid IN ({placeholders})",
            (self.table, *rowids),
        ).fetchall()
        by_rowid = {r["vec_rowid"]: r for r in meta_rows}

        matches: list[VectorMatch] = []
        for vec_row in vec_rows:
            meta = by_rowid.get(vec_row["rowid"])
            if meta is not None:
                matches.append(_row_to_match(meta, vec_row["distance"]))
        return matches

    def _query_mailbox(
        self, embedding: list[float], top_k: int, mailbox_id: str
    ) -> list[VectorMatch]:
        # Exact scan over one mailbox; the KNN MATCH path cannot pre-filter on
        # columns stored outside the vec0 table.
        rows = self._conn.execute(
            f"""
            SELECT e.key, e.vec_rowid, e.message_id, e.mailbox_id, e.chunk_index,
                   e.subject, e.from_email, e.ts, e.embedding_model,
                   vec_distance_l2(v.embedding, ?) AS distance
            FROM vector_entries e
            JOIN {self.table} v ON v.rowid = e.vec_rowid
            WHERE e.vec_table = ? AND e.mailbox_id = ?
            ORDER BY distance
            LIMIT ?
            """,
            (_to_json(embedding), self.table, mailbox_id, top_k),
        ).fetchall()
        return [_row_to_match(r, r["distance"]) for r in rows]

    def count(self, mailbox_id: str | None = None) -> int:
        """Return the number of stored entries, optionally for one mailbox."""
        if mailbox_id is None:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM vector_entries WHERE vec_table = ?", (self.table,)
            ).fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM vector_entries WHERE vec_table = ? AND mailbox_id = ?",
                (self.table, mailbox_id),
            ).fetchone()
        return row[0]


def indexed_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the names of all per-model vec tables (vec0 shadow tables excluded)."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%' "
        "AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name"
    ).fetchall()
    return [r["name"] for r in rows]


def count_entries_by_mailbox(conn: sqlite3.Connection) -> dict[str, int]:
    """Return {mailbox_id: vector entry count} across every model's table."""
    rows = conn.execute(
        "SELECT mailbox_id, COUNT(*) AS n FROM vector_entries GROUP BY mailbox_id"
    ).fetchall()
    return {r["mailbox_id"]: r["n"] for r in rows}


def _row_to_match(row: sqlite3.Row, distance: float) -> VectorMatch:
    return VectorMatch(
        key=row["key"],
        distance=float(distance),
        metadata={
            "message_id": row["message_id"],
            "mailbox_id": row["mailbox_id"],
            "chunk_index": row["chunk_index"],
            "subject": row["subject"],
            "from_email": row["from_email"],
            "ts": row["ts"],
            "embedding_model": row["embedding_model"],
        },
    )


def _to_json(vector: Sequence[float]) -> str:
    return json.dumps([float(x) for x in vector])
