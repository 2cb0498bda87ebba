"""Tests for archivist rich error messages."""

from __future__ import annotations

import pytest

from archivist.cli.errors import (
    err_config,
    err_embedding_model_mismatch,
    err_indexing_aborted,
    err_no_api_key,
    err_no_db,
    err_unknown_mailbox,
    warn_failed_messages,
)


def _has_action(msg: str) -> bool:
    """Every error must contain an actionable instruction."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "set:", "export ", "archivist ", "fix "])


@pytest.mark.parametrize(
    "msg",
    [
        err_no_api_key("openai"),
        err_no_db(),
        err_embedding_model_mismatch("openai/text-embedding-3-small", []),
        err_unknown_mailbox(["pgsql-nope"], ["pgsql-hackers"]),
        err_indexing_aborted("connection refused", 10, 2),
        err_config("bad value"),
        warn_failed_messages(3),
    ],
)
def test_every_message_has_an_action(msg: str) -> None:
    assert _has_action(msg)


@pytest.mark.parametrize("provider,env_var", [
    ("openai", "OPENAI_API_KEY"),
    ("voyage", "VOYAGE_API_KEY"),
    ("acme", "ACME_API_KEY"),
])
def test_err_no_api_key_env_var(provider: str, env_var: str) -> None:
    assert env_var in err_no_api_key(provider)


def test_err_no_db_path() -> None:
    assert "/tmp/x.db" in err_no_db("/tmp/x.db")


def test_err_embedding_model_mismatch_lists_tables() -> None:
    msg = err_embedding_model_mismatch("ollama/x", ["vec_chunks_openai_a", "vec_chunks_openai_b"])
    assert "ollama/x" in msg
    assert "vec_chunks_openai_a, vec_chunks_openai_b" in msg
    assert "(none)" in err_embedding_model_mismatch("ollama/x", [])


def test_err_indexing_aborted_counts() -> None:
    msg = err_indexing_aborted("disk full", 120, 3)
    assert "disk full" in msg
    assert "120" in msg
    assert "Failed: 3" in msg
