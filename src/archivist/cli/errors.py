"""Archivist rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from archivist.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "voyage": "VOYAGE_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".archivist.db") -> str:
    """No .archivist.db found at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  archivist init"
    )


def err_embedding_model_mismatch(model: str, indexed_models: list[str]) -> str:
    """The configured embedding model has no vector index in the database."""
    found = ", ".join(indexed_models) if indexed_models else "(none)"
    return (
        f"[red]Error:[/] No vector index for embedding model '{model}'.\n"
        f"  Indexed tables: {found}\n"
        "  Run:  archivist index  with this model, or set embedding.model in\n"
        "  archivist.yaml to the model the archive was indexed with."
    )


def err_unknown_mailbox(names: list[str], known: list[str]) -> str:
    """One or more --list names are not in the archive."""
    known_list = ", ".join(known) if known else "(none)"
    return (
        f"[red]Error:[/] Unknown mailing list(s): {', '.join(names)}\n"
        f"  Lists in the archive: {known_list}\n"
        "  Run:  archivist status  to see all mailboxes."
    )


def err_indexing_aborted(reason: str, processed: int, failed: int) -> str:
    """A fatal error stopped ``archivist index``; progress so far is kept."""
    return (
        f"[red]Error:[/] Indexing aborted: {reason}\n"
        f"  Processed before the error: {processed}  |  Failed: {failed}\n"
        "  Messages already marked are kept. Fix the cause and run:  archivist index"
    )


def err_config(message: str) -> str:
    """archivist.yaml or the global config is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix archivist.yaml (or ~/.archivist/config.yaml) and retry."
    )


def warn_failed_messages(count: int) -> str:
    """Shown after a run in which some messages could not be embedded."""
    return (
        f"[yellow]⚠[/] {count} message(s) could not be embedded and stay pending.\n"
        "  They are retried on the next:  archivist index"
    )
