"""Fixtures for CLI command tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from rich.console import Console

from archivist.db.connection import Database
from archivist.db.repository import Repository
from archivist.db.schema import initialize

CLI_MODEL = "openai/text-embedding-3-small"
CLI_DIMS = 4


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep the real ~/.archivist and ARCHIVIST_* variables out of CLI tests."""
    global_cfg = tmp_path / "home" / ".archivist" / "config.yaml"
    monkeypatch.setattr("archivist.config._GLOBAL_CONFIG_PATH", global_cfg)
    monkeypatch.delenv("ARCHIVIST_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("ARCHIVIST_LISTS", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    # Wide consoles so tables and summaries are not wrapped
    for module in ("index", "init", "reset", "search", "status"):
        monkeypatch.setattr(f"archivist.cli.{module}.console", Console(width=200))
    return global_cfg


@pytest.fixture
def project(tmp_path: Path, message_factory) -> Path:
    """A project dir with archivist.yaml and a seeded .archivist.db; returns the DB path."""
    (tmp_path / "archivist.yaml").write_text(
        yaml.safe_dump(
            {
                "embedding": {"model": CLI_MODEL, "dimensions": CLI_DIMS},
                "indexing": {"lists": ["pgsql-hackers", "pgsql-general"]},
            }
        ),
        encoding="utf-8",
    )
    db_path = tmp_path / ".archivist.db"
    with Database(db_path) as conn:
        initialize(conn)
        Repository(conn).add_messages(
            [
                message_factory("h1", subject="Planner regression"),
                message_factory("h2", subject="WAL archiving"),
                message_factory("g1", mailbox_id="pgsql-general", subject="Upgrade question"),
                message_factory("b1", mailbox_id="pgsql-bugs", subject="Crash report"),
            ]
        )
    return db_path


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch, embedder_factory):
    """Replace EmbeddingClient in the index and search commands; returns a setter."""
    instances = []

    def install(**kwargs):
        def factory(model):
            embedder = embedder_factory(model=model, dims=CLI_DIMS, **kwargs)
            instances.append(embedder)
            return embedder

        monkeypatch.setattr("archivist.cli.index.EmbeddingClient", factory)
        monkeypatch.setattr("archivist.cli.search.EmbeddingClient", factory)
        return instances

    install()
    return install
