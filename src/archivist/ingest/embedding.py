"""LiteLLM embedding client with retry and API key validation.

Indexing and search both embed through ``EmbeddingClient`` so that queries
are always embedded with the same model as the stored vectors.

Errors are split in two classes:
- ``EmbeddingError`` — the service rejected or timed out on this input.
  The indexing pipeline isolates it to the owning message.
- Anything else (authentication, connection, unknown model) propagates
  unchanged and aborts the run.
"""

from __future__ import annotations

import os
from collections.abc import Sequence

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

DEFAULT_EMBEDDING_MODEL = "openai/text-embedding-3-small"
DEFAULT_EMBEDDING_DIMENSIONS = 1536
MAX_BATCH_SIZE = 128

# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "huggingface": "HUGGINGFACE_API_KEY",
    "ollama": None,  # Local, no key required
}

# Infrastructure failures: never isolated to a single message.
_FATAL_ERRORS: tuple[type[Exception], ...] = (
    litellm.AuthenticationError,
    litellm.NotFoundError,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
)


class EmbeddingError(RuntimeError):
    """The embedding service rejected or timed out on a specific input."""


def provider_of(model: str) -> str:
    return model.split("/")[0].lower() if "/" in model else "openai"


class EmbeddingClient:
    """Batch and single-text embeddings through ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        num_retries: Retries on transient errors (LiteLLM exponential backoff).
        max_batch_size: Texts per request; larger inputs are split.
    """

    def __init__(
        self,
        model: str = DEFAULT_EMBEDDING_MODEL,
        num_retries: int = 3,
        max_batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        self.model = model
        self.num_retries = num_retries
        self.max_batch_size = max_batch_size

    def validate_api_key(self) -> None:
        """Check that the required API key env var is set for the model.

        Raises:
            EnvironmentError: If the required key is missing from environment.
        """
        provider = provider_of(self.model)
        env_var = _PROVIDER_ENV.get(provider)
        if env_var is None:
            return  # No key required (e.g. ollama) or provider-managed auth

        if not os.getenv(env_var):
            raise EnvironmentError(
                f"API key not found for provider '{provider}'. "
                f"Set the {env_var} environment variable."
            )

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per input in input order.

        Raises:
            EmbeddingError: If the service rejects the input or times out.
        """
        vectors: list[list[float]] = []
        for i in range(0, len(texts), self.max_batch_size):
            batch = list(texts[i : i + self.max_batch_size])
            vectors.extend(self._embed_batch(batch))
        return vectors

    def embed_one(self, text: str) -> list[float]:
        """Embed a single text (query time)."""
        return self._embed_batch([text])[0]

    def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = litellm.embedding(
                model=self.model,
                input=batch,
                num_retries=self.num_retries,
            )
        except litellm.Timeout as exc:
            raise EmbeddingError(f"Embedding timed out: {exc}") from exc
        except _FATAL_ERRORS:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}") from exc

        data = list(response.data)
        if len(data) != len(batch):
            raise EmbeddingError(
                f"Embedding service returned {len(data)} vectors for {len(batch)} inputs."
            )
        # Providers may return items out of order; "index" restores input order.
        if all(_field(item, "index") is not None for item in data):
            data.sort(key=lambda item: _field(item, "index"))
        return [list(_field(item, "embedding")) for item in data]


def _field(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
