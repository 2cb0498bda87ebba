"""Email chunker — paragraph-aware, token-bounded splits with overlap.

Strategy:
- Clean the body (quoted replies and signature removed).
- Too short for ``min_tokens`` → no chunks; fits in ``max_tokens`` → one chunk.
- Otherwise merge blank-line paragraphs greedily up to ``target_tokens``.
  Paragraphs over ``max_tokens`` are split on sentence boundaries, and any
  single sentence still over ``max_tokens`` is cut every
  ``max_tokens * chars_per_token`` characters.
- Every block after the first is prefixed with the tail of the previous kept
  block (``overlap_tokens``), starting on a word boundary.
- Blocks under ``min_tokens`` are dropped and survivors re-indexed from 0.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from archivist.config import ChunkerCfg
from archivist.db.models import Chunk, Message
from archivist.ingest.cleaner import clean
from archivist.ingest.tokens import CharTokenEstimator, ModelTokenEstimator, TokenEstimator

TARGET_CHUNK_TOKENS = 400
MAX_CHUNK_TOKENS = 512
MIN_CHUNK_TOKENS = 50
OVERLAP_TOKENS = 50

_PARAGRAPH_RE = re.compile(r"\n\n+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s")


@dataclass
class ChunkOptions:
    """Token budgets for chunk construction.

    Attributes:
        target_tokens: Size paragraphs and sentences are merged up to.
        max_tokens: Hard ceiling for a single paragraph or sentence.
        min_tokens: Chunks below this are dropped.
        overlap_tokens: Tail of the previous block carried into the next one.
        estimator: Token counting strategy.
    """

    target_tokens: int = TARGET_CHUNK_TOKENS
    max_tokens: int = MAX_CHUNK_TOKENS
    min_tokens: int = MIN_CHUNK_TOKENS
    overlap_tokens: int = OVERLAP_TOKENS
    estimator: TokenEstimator = field(default_factory=CharTokenEstimator)

    def __post_init__(self) -> None:
        if self.target_tokens < 1:
            raise ValueError("target_tokens must be >= 1")
        if self.max_tokens < self.target_tokens:
            raise ValueError("max_tokens must be >= target_tokens")
        if not 0 <= self.min_tokens <= self.max_tokens:
            raise ValueError("min_tokens must be in [0, max_tokens]")
        if self.overlap_tokens < 0:
            raise ValueError("overlap_tokens must be >= 0")

    @classmethod
    def from_config(cls, cfg: ChunkerCfg, model: str) -> ChunkOptions:
        """Build options from the ``chunker:`` config section.

        ``tokenizer: model`` counts with *model*'s tokenizer; anything else
        uses the 4-characters-per-token estimate.
        """
        estimator: TokenEstimator = (
            ModelTokenEstimator(model) if cfg.tokenizer == "model" else CharTokenEstimator()
        )
        return cls(
            target_tokens=cfg.target_tokens,
            max_tokens=cfg.max_tokens,
            min_tokens=cfg.min_tokens,
            overlap_tokens=cfg.overlap_tokens,
            estimator=estimator,
        )


class EmailChunker:
    """Split message bodies into ordered, overlapping Chunk objects.

    Pure: the same text and options always produce the same chunks, which is
    what keeps chunk ids stable across indexing runs.
    """

    def __init__(self, options: ChunkOptions | None = None) -> None:
        self.options = options or ChunkOptions()

    def count_tokens(self, text: str) -> int:
        return self.options.estimator.count(text)

    def chunk(self, text: str | None) -> list[Chunk]:
        """Return the chunks of *text* with sequential indices starting at 0."""
        opts = self.options
        cleaned = clean(text)
        if not cleaned:
            return []
        total = self.count_tokens(cleaned)
        if total < opts.min_tokens:
            return []
        if total <= opts.max_tokens:
            return [Chunk(index=0, text=cleaned, token_count=total)]

        blocks = self._merge_paragraphs(split_paragraphs(cleaned))

        chunks: list[Chunk] = []
        # Overlap comes from the last block that became a chunk, never a dropped one
        prev_block: str | None = None
        for block in blocks:
            body = block
            if prev_block is not None and opts.overlap_tokens > 0:
                overlap = self._overlap_tail(prev_block)
                if overlap:
                    body = f"{overlap}\n\n{block}"
            tokens = self.count_tokens(body)
            if tokens >= opts.min_tokens:
                chunks.append(Chunk(index=len(chunks), text=body, token_count=tokens))
                prev_block = block

        if not chunks:
            return [Chunk(index=0, text=cleaned, token_count=total)]
        return chunks

    def chunk_message(self, message: Message) -> list[Chunk]:
        """Chunk *message* and bind each chunk to it (id + metadata)."""
        return [c.for_message(message) for c in self.chunk(message.body_text)]

    # ------------------------------------------------------------------
    # Block construction
    # ------------------------------------------------------------------

    def _merge_paragraphs(self, paragraphs: list[str]) -> list[str]:
        opts = self.options
        blocks: list[str] = []
        current = ""
        for para in paragraphs:
            if self.count_tokens(para) > opts.max_tokens:
                if current:
                    blocks.append(current)
                    current = ""
                blocks.extend(self._split_oversized(para))
                continue

            combined = f"{current}\n\n{para}" if current else para
            if self.count_tokens(combined) > opts.target_tokens:
                if current:
                    blocks.append(current)
                current = para
            else:
                current = combined
        if current:
            blocks.append(current)
        return blocks

    def _split_oversized(self, text: str) -> list[str]:
        """Merge sentences up to the target; hard-split sentences over the maximum."""
        opts = self.options
        pieces: list[str] = []
        current = ""
        for sentence in split_sentences(text):
            if self.count_tokens(sentence) > opts.max_tokens:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.extend(self._hard_split(sentence))
                continue

            combined = f"{current} {sentence}" if current else sentence
            if self.count_tokens(combined) > opts.target_tokens and current:
                pieces.append(current)
                current = sentence
            else:
                current = combined
        if current:
            pieces.append(current)
        return pieces

    def _hard_split(self, text: str) -> list[str]:
        size = self.options.estimator.to_chars(self.options.max_tokens)
        return [text[i : i + size] for i in range(0, len(text), size)]

    def _overlap_tail(self, previous: str) -> str:
        """Return the tail of *previous* used as overlap, starting on a word.

        A block shorter than the overlap budget is carried over whole. A tail
        with no whitespace at all (hard-split input) is kept as-is. A tail
        whose only word boundary is at its very end yields no overlap.
        """
        size = self.options.estimator.to_chars(self.options.overlap_tokens)
        if len(previous) <= size:
            return previous

        start = len(previous) - size
        tail = previous[start:]
        if previous[start - 1].isspace():
            return tail.lstrip()

        match = _WHITESPACE_RE.search(tail)
        if match is None:
            return tail
        return tail[match.end() :].lstrip()


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines; paragraphs are stripped and empties dropped."""
    return [p.strip() for p in _PARAGRAPH_RE.split(text) if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split after ``.``, ``!`` or ``?`` followed by whitespace."""
    return [s for s in _SENTENCE_RE.split(text) if s]


def chunk_text(text: str | None, options: ChunkOptions | None = None) -> list[Chunk]:
    """Chunk *text* with *options* (defaults: 400 / 512 / 50 / 50 tokens)."""
    return EmailChunker(options).chunk(text)
