"""Archive database layer."""

from archivist.db.connection import Database
from archivist.db.migrations import MIGRATIONS, run_migrations
from archivist.db.schema import initialize
from archivist.db.vectors import VectorIndex, ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "VectorIndex",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
