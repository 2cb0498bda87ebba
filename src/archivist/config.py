"""Archivist configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (ARCHIVIST_EMBEDDING_MODEL, ARCHIVIST_LISTS)
  3. Per-project archivist.yaml  (next to .archivist.db)
  4. Global ~/.archivist/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".archivist"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "archivist.yaml"

# Mailing lists indexed when no allow-list is configured, in priority order.
DEFAULT_LISTS: tuple[str, ...] = (
    "pgsql-announce",
    "pgsql-hackers",
    "pgsql-general",
    "pgsql-bugs",
    "pgsql-performance",
    "pgsql-novice",
    "pgsql-sql",
    "pgsql-admin",
)

# Fields that suggest an API key — forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or overlap_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # my_secret, client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections — unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "chunker", "indexing", "search"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (archivist.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


@dataclass
class ChunkerCfg:
    """Token budgets for the email chunker (archivist.yaml: chunker:).

    Attributes:
        tokenizer: ``chars`` (4 characters ≈ 1 token) or ``model`` (count
            with the embedding model's tokenizer via LiteLLM).
    """

    target_tokens: int = 400
    max_tokens: int = 512
    min_tokens: int = 50
    overlap_tokens: int = 50
    tokenizer: str = "chars"


@dataclass
class IndexingCfg:
    """Batch indexing configuration (archivist.yaml: indexing:)."""

    lists: list[str] = field(default_factory=lambda: list(DEFAULT_LISTS))
    batch_size: int = 100
    upsert_batch_size: int = 250
    concurrency: int = 5


@dataclass
class SearchCfg:
    """Query configuration (archivist.yaml: search:)."""

    top_k: int = 20


@dataclass
class ArchivistConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunker: ChunkerCfg = field(default_factory=ChunkerCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    search: SearchCfg = field(default_factory=SearchCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: ArchivistConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    ch = cfg.chunker
    if ch.tokenizer not in ("chars", "model"):
        raise ConfigError(f"chunker.tokenizer must be 'chars' or 'model', got '{ch.tokenizer}'")
    if ch.target_tokens < 1 or ch.max_tokens < 1:
        raise ConfigError("chunker.target_tokens and chunker.max_tokens must be >= 1")
    if ch.target_tokens > ch.max_tokens:
        raise ConfigError(
            f"chunker.target_tokens ({ch.target_tokens}) exceeds "
            f"chunker.max_tokens ({ch.max_tokens})"
        )
    if not 0 <= ch.min_tokens <= ch.max_tokens:
        raise ConfigError("chunker.min_tokens must be between 0 and chunker.max_tokens")
    if ch.overlap_tokens < 0:
        raise ConfigError("chunker.overlap_tokens must be >= 0")

    ix = cfg.indexing
    for name in ("batch_size", "upsert_batch_size", "concurrency"):
        if getattr(ix, name) < 1:
            raise ConfigError(f"indexing.{name} must be >= 1")
    if cfg.embedding.dimensions < 1:
        raise ConfigError("embedding.dimensions must be >= 1")
    if cfg.search.top_k < 1:
        raise ConfigError("search.top_k must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def parse_lists(value: str | list | tuple) -> list[str]:
    """Normalise a list allow-list given as a comma-separated string or a sequence."""
    items = value.split(",") if isinstance(value, str) else value
    return [str(s).strip() for s in items if str(s).strip()]


def _cfg_from_dict(data: dict[str, Any]) -> ArchivistConfig:
    """Build an *ArchivistConfig* from a merged raw YAML dict."""
    cfg = ArchivistConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            )

        if "chunker" in data:
            c = data["chunker"] or {}
            cfg.chunker = ChunkerCfg(
                target_tokens=int(c.get("target_tokens", cfg.chunker.target_tokens)),
                max_tokens=int(c.get("max_tokens", cfg.chunker.max_tokens)),
                min_tokens=int(c.get("min_tokens", cfg.chunker.min_tokens)),
                overlap_tokens=int(c.get("overlap_tokens", cfg.chunker.overlap_tokens)),
                tokenizer=str(c.get("tokenizer", cfg.chunker.tokenizer)),
            )

        if "indexing" in data:
            ix = data["indexing"] or {}
            cfg.indexing = IndexingCfg(
                lists=parse_lists(ix["lists"]) if "lists" in ix else cfg.indexing.lists,
                batch_size=int(ix.get("batch_size", cfg.indexing.batch_size)),
                upsert_batch_size=int(
                    ix.get("upsert_batch_size", cfg.indexing.upsert_batch_size)
                ),
                concurrency=int(ix.get("concurrency", cfg.indexing.concurrency)),
            )

        if "search" in data:
            s = data["search"] or {}
            cfg.search = SearchCfg(top_k=int(s.get("top_k", cfg.search.top_k)))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: ArchivistConfig) -> ArchivistConfig:
    """Apply ARCHIVIST_* environment variable overrides (layer 2)."""
    if model := os.environ.get("ARCHIVIST_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if lists := os.environ.get("ARCHIVIST_LISTS"):
        cfg.indexing.lists = parse_lists(lists)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ArchivistConfig:
    """Load and return a merged *ArchivistConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *archivist.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *ArchivistConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is malformed or out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


def write_project_config(project_dir: Path, cfg: ArchivistConfig | None = None) -> Path:
    """Write *archivist.yaml* with the given (or default) settings if missing.

    Returns:
        Path to the project config file.
    """
    cfg = cfg or ArchivistConfig()
    target = project_dir / PROJECT_CONFIG_NAME
    if target.exists():
        return target

    data = {
        "embedding": {"model": cfg.embedding.model, "dimensions": cfg.embedding.dimensions},
        "chunker": {
            "target_tokens": cfg.chunker.target_tokens,
            "max_tokens": cfg.chunker.max_tokens,
            "min_tokens": cfg.chunker.min_tokens,
            "overlap_tokens": cfg.chunker.overlap_tokens,
            "tokenizer": cfg.chunker.tokenizer,
        },
        "indexing": {
            "lists": list(cfg.indexing.lists),
            "batch_size": cfg.indexing.batch_size,
            "upsert_batch_size": cfg.indexing.upsert_batch_size,
            "concurrency": cfg.indexing.concurrency,
        },
        "search": {"top_k": cfg.search.top_k},
    }
    header = (
        "# Archivist project configuration.\n"
        "# Changing chunker settings changes chunk ids; run 'archivist reset' and\n"
        "# re-index affected lists afterwards.\n\n"
    )
    target.write_text(header + yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.archivist/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Archivist global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
