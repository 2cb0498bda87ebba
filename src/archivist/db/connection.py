"""SQLite connection layer with sqlite-vec extension.

One archive is one SQLite file in WAL mode. ``archivist index`` holds write
transactions for a whole upsert sub-batch, so readers (``search``, ``status``)
wait on a busy timeout instead of failing with ``database is locked``.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

DEFAULT_DB_NAME = ".archivist.db"
BUSY_TIMEOUT_MS = 5000


class Database:
    """Per-archive SQLite database holding messages, index state and vectors."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_NAME, *, create: bool = True) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file.
            create: Create the file if missing. Commands that only work on an
                initialised archive pass ``False`` so a mistyped ``--db``
                never leaves an empty database behind.
        """
        self.db_path = Path(db_path)
        self.create = create
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection.

        Raises:
            FileNotFoundError: ``create`` is False and the file does not exist.
        """
        if self.create:
            conn = sqlite3.connect(self.db_path)
        else:
            if not self.db_path.is_file():
                raise FileNotFoundError(f"No archive database at '{self.db_path}'")
            conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=rw", uri=True)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        return conn

    def size_bytes(self) -> int:
        """On-disk size of the archive, including the WAL sidecar if present."""
        total = 0
        for path in (self.db_path, self.db_path.with_name(self.db_path.name + "-wal")):
            if path.exists():
                total += path.stat().st_size
        return total

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
