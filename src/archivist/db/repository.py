"""Repository pattern for message records and their index state.

Single interface for: mailboxes, messages, the ``embedded_at`` marker the
indexing pipeline sets, and the batched id lookups the search engine issues.
Vector storage lives in ``archivist.db.vectors``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from archivist.db.models import Message

# Keeps IN (...) lists well below SQLITE_MAX_VARIABLE_NUMBER on old builds.
_MAX_PARAMS = 500

_MESSAGE_COLUMNS = "id, mailbox_id, subject, from_email, ts, body_text, embedded_at"


@dataclass
class MailboxStats:
    mailbox_id: str
    total: int
    embedded: int
    pending: int


class Repository:
    """Data access layer for mailboxes and messages.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with schema initialised
                (see archivist.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Messages — written by the (external) archive importer
    # ------------------------------------------------------------------

    def add_messages(self, messages: Iterable[Message]) -> int:
        """Insert or refresh message records in one transaction.

        Existing rows keep their ``embedded_at`` marker. Mailbox rows are
        created on demand and their message counts refreshed.

        Returns:
            Number of messages written.
        """
        count = 0
        mailboxes: set[str] = set()
        with self._conn:
            for msg in messages:
                self._conn.execute(
                    "INSERT INTO mailboxes (id) VALUES (?) ON CONFLICT(id) DO NOTHING",
                    (msg.mailbox_id,),
                )
                self._conn.execute(
                    """
                    INSERT INTO messages (id, mailbox_id, subject, from_email, ts, body_text)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        subject = excluded.subject,
                        from_email = excluded.from_email,
                        body_text = excluded.body_text
                    """,
                    (
                        msg.id,
                        msg.mailbox_id,
                        msg.subject or "",
                        msg.from_email or "",
                        msg.ts,
                        msg.body_text,
                    ),
                )
                mailboxes.add(msg.mailbox_id)
                count += 1
            for mailbox_id in mailboxes:
                self._refresh_mailbox_count(mailbox_id)
        return count

    def get_message(self, message_id: str) -> Message | None:
        """Return a message by ID, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message_id,)
        ).fetchone()
        return _row_to_message(row) if row else None

    # ------------------------------------------------------------------
    # Indexing pipeline contract
    # ------------------------------------------------------------------

    def fetch_unembedded(
        self,
        mailbox_ids: Sequence[str],
        limit: int,
        exclude_ids: Iterable[str] = (),
    ) -> list[Message]:
        """Return up to *limit* messages still waiting for embeddings, newest first.

        Only messages with a non-empty body, a mailbox in *mailbox_ids* and an
        unset ``embedded_at`` marker qualify. *exclude_ids* removes messages
        the caller already handled in the current run without marking them.

        Args:
            mailbox_ids: Allow-list of mailbox identifiers (empty → no rows).
            limit: Maximum number of rows to return (must be >= 1).
            exclude_ids: Message ids to leave out.

        Returns:
            List of Message instances ordered by timestamp descending.
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        mailbox_ids = list(mailbox_ids)
        if not mailbox_ids:
            return []
        excluded = list(exclude_ids)

        sql = (
            f"SELECT {_MESSAGE_COLUMNS} FROM messages "
            "WHERE body_text IS NOT NULL AND body_text != '' "
            "AND embedded_at IS NULL "
            f"AND mailbox_id IN ({_placeholders(mailbox_ids)})"
        )
        params: list = [*mailbox_ids]
        if excluded:
            # Excluded ids can outgrow a single IN list; a temp table keeps it one query.
            self._conn.execute(
                "CREATE TEMP TABLE IF NOT EXISTS _excluded_ids (id TEXT PRIMARY KEY)"
            )
            self._conn.execute("DELETE FROM _excluded_ids")
            self._conn.executemany(
                "INSERT OR IGNORE INTO _excluded_ids (id) VALUES (?)",
                [(i,) for i in excluded],
            )
            self._conn.commit()
            sql += " AND id NOT IN (SELECT id FROM _excluded_ids)"
        sql += " ORDER BY ts DESC, id LIMIT ?"
        params.append(limit)

        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_message(r) for r in rows]

    def mark_embedded(self, message_ids: Iterable[str]) -> int:
        """Set ``embedded_at`` on every id in *message_ids* in one transaction.

        Rows that already carry a marker keep their original timestamp.

        Returns:
            Number of rows newly marked.
        """
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return 0
        marked = 0
        with self._conn:
            for batch in _batched(ids, _MAX_PARAMS):
                cur = self._conn.execute(
                    "UPDATE messages SET embedded_at = datetime('now') "
                    f"WHERE id IN ({_placeholders(batch)}) AND embedded_at IS NULL",
                    batch,
                )
                marked += cur.rowcount
        return marked

    def fetch_by_ids(self, message_ids: Iterable[str]) -> list[Message]:
        """Return the messages for *message_ids*. Row order is unspecified."""
        ids = list(dict.fromkeys(message_ids))
        messages: list[Message] = []
        for batch in _batched(ids, _MAX_PARAMS):
            rows = self._conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id IN ({_placeholders(batch)})",
                batch,
            ).fetchall()
            messages.extend(_row_to_message(r) for r in rows)
        return messages

    def reset_embedded(self, mailbox_id: str) -> int:
        """Clear ``embedded_at`` for *mailbox_id* so the next run re-embeds it.

        Returns:
            Number of messages reset.
        """
        with self._conn:
            cur = self._conn.execute(
                "UPDATE messages SET embedded_at = NULL "
                "WHERE mailbox_id = ? AND embedded_at IS NOT NULL",
                (mailbox_id,),
            )
        return cur.rowcount

    # ------------------------------------------------------------------
    # Mailboxes
    # ------------------------------------------------------------------

    def list_mailboxes(self) -> list[str]:
        return [
            r["id"] for r in self._conn.execute("SELECT id FROM mailboxes ORDER BY id").fetchall()
        ]

    def mailbox_stats(self) -> list[MailboxStats]:
        """Return per-mailbox totals: messages, embedded, pending (non-empty body)."""
        rows = self._conn.execute(
            """
            SELECT
                mb.id AS mailbox_id,
                COUNT(m.id) AS total,
                COUNT(m.embedded_at) AS embedded,
                SUM(CASE WHEN m.embedded_at IS NULL AND m.body_text IS NOT NULL
                         AND m.body_text != '' THEN 1 ELSE 0 END) AS pending
            FROM mailboxes mb
            LEFT JOIN messages m ON m.mailbox_id = mb.id
            GROUP BY mb.id
            ORDER BY mb.id
            """
        ).fetchall()
        return [
            MailboxStats(
                mailbox_id=r["mailbox_id"],
                total=r["total"],
                embedded=r["embedded"],
                pending=r["pending"] or 0,
            )
            for r in rows
        ]

    def _refresh_mailbox_count(self, mailbox_id: str) -> None:
        self._conn.execute(
            "UPDATE mailboxes SET message_count = "
            "(SELECT COUNT(*) FROM messages WHERE mailbox_id = ?) WHERE id = ?",
            (mailbox_id, mailbox_id),
        )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        mailbox_id=row["mailbox_id"],
        subject=row["subject"],
        from_email=row["from_email"],
        ts=row["ts"],
        body_text=row["body_text"],
        embedded_at=row["embedded_at"],
    )


def _placeholders(values: Sequence) -> str:
    return ",".join("?" * len(values))


def _batched(values: list, size: int) -> Iterator[list]:
    for i in range(0, len(values), size):
        yield values[i : i + size]
