"""Tests for the email chunker."""

from __future__ import annotations

import pytest

from archivist.config import ChunkerCfg
from archivist.db.models import Message, chunk_id
from archivist.ingest.chunker import (
    ChunkOptions,
    EmailChunker,
    chunk_text,
    split_paragraphs,
    split_sentences,
)
from archivist.ingest.tokens import CharTokenEstimator, ModelTokenEstimator


# ------------------------------------------------------------------
# chunk_id
# ------------------------------------------------------------------


def test_chunk_id_format():
    assert chunk_id("<abc@example.org>", 2) == "<abc@example.org>#chunk2"


def test_chunk_id_negative_index():
    with pytest.raises(ValueError):
        chunk_id("m1", -1)


# ------------------------------------------------------------------
# Options
# ------------------------------------------------------------------


def test_default_options():
    opts = ChunkOptions()
    assert (opts.target_tokens, opts.max_tokens, opts.min_tokens, opts.overlap_tokens) == (
        400,
        512,
        50,
        50,
    )
    assert isinstance(opts.estimator, CharTokenEstimator)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"target_tokens": 0},
        {"target_tokens": 600, "max_tokens": 512},
        {"min_tokens": 600},
        {"min_tokens": -1},
        {"overlap_tokens": -5},
    ],
)
def test_invalid_options(kwargs):
    with pytest.raises(ValueError):
        ChunkOptions(**kwargs)


def test_options_from_config():
    cfg = ChunkerCfg(target_tokens=200, max_tokens=300, min_tokens=10, overlap_tokens=20)
    opts = ChunkOptions.from_config(cfg, "openai/text-embedding-3-small")
    assert (opts.target_tokens, opts.max_tokens, opts.min_tokens, opts.overlap_tokens) == (
        200,
        300,
        10,
        20,
    )
    assert isinstance(opts.estimator, CharTokenEstimator)


def test_options_from_config_model_tokenizer():
    opts = ChunkOptions.from_config(ChunkerCfg(tokenizer="model"), "openai/text-embedding-3-small")
    assert isinstance(opts.estimator, ModelTokenEstimator)
    assert opts.estimator.model == "openai/text-embedding-3-small"


# ------------------------------------------------------------------
# Short and single-chunk bodies
# ------------------------------------------------------------------


@pytest.mark.parametrize("text", [None, "", "Thanks, applied.", "x" * 196])
def test_too_short_yields_no_chunks(text):
    assert chunk_text(text) == []


def test_exactly_min_tokens_is_kept():
    chunks = chunk_text("x" * 200)
    assert len(chunks) == 1
    assert chunks[0].token_count == 50


def test_single_chunk_up_to_max():
    text = "word " * 409  # 2044 chars after strip → 511 tokens
    chunks = chunk_text(text)
    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].text == text.strip()
    assert chunks[0].token_count == 511


def test_cleaning_applied_before_chunking():
    body = "Real content here. " * 20 + "\n> quoted text\n-- \nSignature line"
    chunks = chunk_text(body)
    assert len(chunks) == 1
    assert ">" not in chunks[0].text
    assert "Signature" not in chunks[0].text


# ------------------------------------------------------------------
# Multi-chunk bodies
# ------------------------------------------------------------------


def test_ten_paragraphs_split_with_bounded_size(body_factory):
    text = body_factory("p", paragraphs=10, words=50)
    chunks = chunk_text(text)
    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for c in chunks:
        assert c.token_count <= 400 + 50
        assert c.token_count >= 50


def test_first_chunk_has_no_overlap(body_factory):
    text = body_factory("p", paragraphs=10, words=50)
    chunks = chunk_text(text)
    assert text.startswith(chunks[0].text)


def test_overlap_is_word_aligned_suffix_of_previous_block(body_factory):
    text = body_factory("p", paragraphs=10, words=50)
    chunks = chunk_text(text)
    overlap = chunks[1].text.split("\n\n")[0]
    assert overlap
    assert chunks[0].text.endswith(overlap)
    assert chunks[0].text[-len(overlap) - 1].isspace()
    assert len(overlap) <= 50 * 4


def test_overlap_skips_dropped_block():
    # A 401-token paragraph, a two-word aside and an oversized paragraph.
    # With a 20-token overlap the aside block stays under min_tokens.
    opener = ("abcdefgh " * 178).strip()
    sentence = "The planner picked a sequential scan over the index for this query."
    long_para = " ".join([sentence] * 50)
    text = f"{opener}\n\nok then\n\n{long_para}"
    chunks = chunk_text(text, ChunkOptions(overlap_tokens=20))

    assert len(chunks) == 4
    assert [c.index for c in chunks] == [0, 1, 2, 3]
    assert chunks[0].text == opener
    for prev, cur in zip(chunks, chunks[1:]):
        head, sep, _ = cur.text.partition("\n\n")
        assert sep
        assert head
        assert prev.text.endswith(head)
        assert len(head) <= 20 * 4
    assert all("ok then" not in c.text for c in chunks)


def test_overlap_tail_never_starts_mid_word():
    chunker = EmailChunker(ChunkOptions(overlap_tokens=2))
    # 8-char budget: the only whitespace in the tail is its last character
    assert chunker._overlap_tail("x" * 20 + "abcdefg ") == ""
    assert chunker._overlap_tail("x" * 20 + "ab cdefg") == "cdefg"
    assert chunker._overlap_tail("x" * 30) == "x" * 8


def test_no_overlap_when_disabled(body_factory):
    text = body_factory("p", paragraphs=10, words=50)
    chunks = chunk_text(text, ChunkOptions(overlap_tokens=0))
    joined = "\n\n".join(c.text for c in chunks)
    assert joined == text


def test_oversized_paragraph_split_on_sentences():
    sentence = "The planner picked a sequential scan over the index for this query."
    paragraph = " ".join([sentence] * 45)  # one paragraph, far over max
    chunks = chunk_text(paragraph, ChunkOptions(overlap_tokens=0))
    assert len(chunks) > 1
    for c in chunks:
        assert c.text.endswith(".")
        assert c.token_count <= 400


def test_unbroken_run_is_hard_split():
    chunks = chunk_text("x" * 5000)
    assert len(chunks) == 3
    assert chunks[0].text == "x" * 2048
    assert chunks[0].token_count == 512
    # Whitespace-free tail is carried over as-is
    assert chunks[1].text.startswith("x" * 200 + "\n\n")


def test_short_trailing_block_dropped_and_reindexed():
    para = ("word " * 312).strip()  # 390 tokens
    text = f"{para}\n\n{para}\n\n{'z' * 40}"
    chunks = chunk_text(text, ChunkOptions(overlap_tokens=0))
    assert [c.index for c in chunks] == [0, 1]
    assert all("z" * 40 not in c.text for c in chunks)


def test_all_blocks_dropped_falls_back_to_whole_text():
    text = "\n\n".join(["aaaaaaaa"] * 10)
    opts = ChunkOptions(target_tokens=10, max_tokens=20, min_tokens=15, overlap_tokens=0)
    chunks = chunk_text(text, opts)
    assert len(chunks) == 1
    assert chunks[0].text == text
    assert chunks[0].token_count == 25


def test_chunking_is_deterministic(body_factory):
    text = body_factory("d", paragraphs=12, words=40)
    first = chunk_text(text)
    second = chunk_text(text)
    assert [(c.index, c.text) for c in first] == [(c.index, c.text) for c in second]


# ------------------------------------------------------------------
# chunk_message
# ------------------------------------------------------------------


def test_chunk_message_binds_ids_and_metadata(body_factory):
    msg = Message(
        id="<m1@example.org>",
        mailbox_id="pgsql-hackers",
        subject="Planner bug",
        from_email="dev@example.org",
        ts="2024-03-01 10:00:00",
        body_text=body_factory("m", paragraphs=10, words=50),
    )
    chunks = EmailChunker().chunk_message(msg)
    assert [c.id for c in chunks] == [f"<m1@example.org>#chunk{i}" for i in range(len(chunks))]
    assert all(c.mailbox_id == "pgsql-hackers" and c.subject == "Planner bug" for c in chunks)


def test_chunk_message_without_body():
    msg = Message(id="m1", mailbox_id="pgsql-hackers", body_text=None)
    assert EmailChunker().chunk_message(msg) == []


# ------------------------------------------------------------------
# Splitting helpers
# ------------------------------------------------------------------


def test_split_paragraphs():
    assert split_paragraphs("a\n\n\n b \n\n\n\n") == ["a", "b"]


def test_split_sentences():
    assert split_sentences("One. Two!  Three? Four") == ["One.", "Two!", "Three?", "Four"]
