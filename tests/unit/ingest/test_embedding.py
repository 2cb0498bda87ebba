"""Tests for the LiteLLM embedding client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import litellm
import pytest

from archivist.ingest.embedding import EmbeddingClient, EmbeddingError, provider_of


def _response(vectors, with_index=True, reverse=False):
    items = [
        {"embedding": v, "index": i} if with_index else {"embedding": v}
        for i, v in enumerate(vectors)
    ]
    if reverse:
        items.reverse()
    resp = MagicMock()
    resp.data = items
    return resp


def _echo_embedding(**kwargs):
    """Return one vector per input, encoding the input's position."""
    return _response([[float(len(t)), 0.0] for t in kwargs["input"]])


# ------------------------------------------------------------------
# embed
# ------------------------------------------------------------------


def test_embed_returns_vectors_in_order():
    with patch("archivist.ingest.embedding.litellm.embedding", side_effect=_echo_embedding) as m:
        vectors = EmbeddingClient().embed(["a", "bb", "ccc"])
    assert vectors == [[1.0, 0.0], [2.0, 0.0], [3.0, 0.0]]
    kwargs = m.call_args.kwargs
    assert kwargs["model"] == "openai/text-embedding-3-small"
    assert kwargs["num_retries"] == 3


def test_embed_splits_into_batches():
    client = EmbeddingClient(max_batch_size=2)
    with patch("archivist.ingest.embedding.litellm.embedding", side_effect=_echo_embedding) as m:
        vectors = client.embed(["a", "bb", "ccc", "dddd", "eeeee"])
    assert m.call_count == 3
    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0, 5.0]


def test_embed_restores_order_by_index():
    resp = _response([[1.0], [2.0], [3.0]], reverse=True)
    with patch("archivist.ingest.embedding.litellm.embedding", return_value=resp):
        assert EmbeddingClient().embed(["a", "b", "c"]) == [[1.0], [2.0], [3.0]]


def test_embed_without_index_keeps_response_order():
    resp = _response([[1.0], [2.0]], with_index=False)
    with patch("archivist.ingest.embedding.litellm.embedding", return_value=resp):
        assert EmbeddingClient().embed(["a", "b"]) == [[1.0], [2.0]]


def test_embed_empty_input_makes_no_call():
    with patch("archivist.ingest.embedding.litellm.embedding") as m:
        assert EmbeddingClient().embed([]) == []
    m.assert_not_called()


def test_embed_one():
    with patch(
        "archivist.ingest.embedding.litellm.embedding", return_value=_response([[0.5, 0.5]])
    ):
        assert EmbeddingClient().embed_one("query") == [0.5, 0.5]


def test_invalid_batch_size():
    with pytest.raises(ValueError):
        EmbeddingClient(max_batch_size=0)


# ------------------------------------------------------------------
# Error classification
# ------------------------------------------------------------------


def test_count_mismatch_raises_embedding_error():
    with patch("archivist.ingest.embedding.litellm.embedding", return_value=_response([[1.0]])):
        with pytest.raises(EmbeddingError, match="1 vectors for 2 inputs"):
            EmbeddingClient().embed(["a", "b"])


def test_rejected_input_raises_embedding_error():
    with patch(
        "archivist.ingest.embedding.litellm.embedding",
        side_effect=litellm.BadRequestError(
            message="input too long", model="text-embedding-3-small", llm_provider="openai"
        ),
    ):
        with pytest.raises(EmbeddingError):
            EmbeddingClient().embed(["a"])


def test_timeout_raises_embedding_error():
    with patch(
        "archivist.ingest.embedding.litellm.embedding",
        side_effect=litellm.Timeout(
            message="timed out", model="text-embedding-3-small", llm_provider="openai"
        ),
    ):
        with pytest.raises(EmbeddingError, match="timed out"):
            EmbeddingClient().embed(["a"])


def test_authentication_error_propagates():
    exc = litellm.AuthenticationError(
        message="bad key", llm_provider="openai", model="text-embedding-3-small"
    )
    with patch("archivist.ingest.embedding.litellm.embedding", side_effect=exc):
        with pytest.raises(litellm.AuthenticationError):
            EmbeddingClient().embed(["a"])


# ------------------------------------------------------------------
# API keys
# ------------------------------------------------------------------


@pytest.mark.parametrize("model,provider", [
    ("openai/text-embedding-3-small", "openai"),
    ("text-embedding-3-small", "openai"),
    ("Ollama/nomic-embed-text", "ollama"),
])
def test_provider_of(model, provider):
    assert provider_of(model) == provider


def test_validate_api_key_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        EmbeddingClient().validate_api_key()


def test_validate_api_key_present(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    EmbeddingClient().validate_api_key()


def test_validate_api_key_local_provider(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    EmbeddingClient(model="ollama/nomic-embed-text").validate_api_key()
