"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib

import pytest

from archivist.db.connection import Database
from archivist.db.models import Message
from archivist.db.schema import initialize
from archivist.ingest.embedding import EmbeddingError

TEST_MODEL = "openai/text-embedding-3-small"
TEST_DIMS = 4


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".archivist.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


class FakeEmbedder:
    """Deterministic stand-in for EmbeddingClient (no network).

    Vectors come from *vectors* when the text is listed there, otherwise from
    a hash of the text. Texts containing any string in *fail_on* raise
    EmbeddingError; *raise_exc* is raised for every call when set.
    """

    def __init__(
        self,
        model: str = TEST_MODEL,
        dims: int = TEST_DIMS,
        vectors: dict[str, list[float]] | None = None,
        fail_on: tuple[str, ...] = (),
        raise_exc: Exception | None = None,
    ) -> None:
        self.model = model
        self.dims = dims
        self.vectors = vectors or {}
        self.fail_on = fail_on
        self.raise_exc = raise_exc
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 for b in digest[: self.dims]]

    def embed(self, texts):
        self.calls.append(list(texts))
        if self.raise_exc is not None:
            raise self.raise_exc
        for text in texts:
            if any(marker in text for marker in self.fail_on):
                raise EmbeddingError("input rejected")
        return [self._vector(t) for t in texts]

    def embed_one(self, text):
        return self.embed([text])[0]

    def validate_api_key(self) -> None:
        return None


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


def long_body(seed: str, paragraphs: int = 10, words: int = 60) -> str:
    """Return a multi-paragraph body of roughly paragraphs * words * 6 characters."""
    paras = []
    for p in range(paragraphs):
        sentence = " ".join(f"{seed}{p}w{i}" for i in range(words))
        paras.append(sentence + ".")
    return "\n\n".join(paras)


def make_message(
    id: str,
    mailbox_id: str = "pgsql-hackers",
    body: str | None = None,
    ts: str = "2024-01-01 00:00:00",
    subject: str = "",
) -> Message:
    if body is None:
        body = "This message body is long enough to produce a single chunk. " * 6
    return Message(
        id=id,
        mailbox_id=mailbox_id,
        subject=subject or f"Subject {id}",
        from_email=f"{id}@example.org",
        ts=ts,
        body_text=body,
    )


@pytest.fixture
def embedder_factory():
    return FakeEmbedder


@pytest.fixture
def message_factory():
    return make_message


@pytest.fixture
def body_factory():
    return long_body
