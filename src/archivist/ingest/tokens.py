"""Token estimation strategies used by the chunker."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod

import litellm

CHARS_PER_TOKEN = 4


class TokenEstimator(ABC):
    """Counts tokens and converts token budgets to character budgets.

    Character conversion is needed wherever the chunker slices raw text
    (overlap tails, hard splits of unbroken runs).
    """

    chars_per_token: int = CHARS_PER_TOKEN

    @abstractmethod
    def count(self, text: str) -> int:
        """Return the estimated token count of *text*."""

    def to_chars(self, tokens: int) -> int:
        return tokens * self.chars_per_token


class CharTokenEstimator(TokenEstimator):
    """``ceil(len(text) / 4)`` — fast, dependency-free, deterministic."""

    def __init__(self, chars_per_token: int = CHARS_PER_TOKEN) -> None:
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)


class ModelTokenEstimator(TokenEstimator):
    """Exact counts from the embedding model's tokenizer via LiteLLM.

    Falls back to the character heuristic if the model is not supported by
    ``litellm.token_counter()``.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        self._fallback = CharTokenEstimator()

    def count(self, text: str) -> int:
        if not text:
            return 0
        try:
            return litellm.token_counter(model=self.model, text=text)
        except Exception:
            return self._fallback.count(text)


def estimate_tokens(text: str) -> int:
    """Default estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)
