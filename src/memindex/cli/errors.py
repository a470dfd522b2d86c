"""memindex rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from memindex.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

_PROVIDER_ENV = {
    "openai": "OPENAI_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _PROVIDER_ENV.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".memindex.db") -> str:
    """No index database at *db_path*."""
    return (
        f"[red]Error:[/] No index database found at '{db_path}'.\n"
        "  Run:  memindex index --root ."
    )


def err_no_collection(root: str) -> str:
    """No --collection given and no .memindex.json at the repository root."""
    return (
        "[red]Error:[/] No collection specified.\n"
        "  Pass  --collection <key>  or create "
        f"'{root.rstrip('/')}/.memindex.json' containing:\n"
        '    {"collection": "<key>"}'
    )


def err_index_root(root: str) -> str:
    """Repository root is missing or not a directory."""
    return (
        f"[red]Error:[/] Repository path not found: '{root}'\n"
        "  Check the  --root  argument points at an existing directory."
    )


def err_provider(message: str) -> str:
    """The embedding provider failed (quota, timeout, malformed input)."""
    return (
        f"[red]Error:[/] Embedding provider failed: {message}\n"
        "  Check your API key, quota and network, then retry.\n"
        "  Already indexed files are kept; re-running only processes the rest."
    )


def err_store(message: str) -> str:
    """The index database rejected an operation."""
    return (
        f"[red]Error:[/] Index store error: {message}\n"
        "  Run:  memindex status  to inspect the index."
    )


def err_embedding_model_mismatch(db_model: str, config_model: str) -> str:
    """Embedding model stored in the index does not match current config."""
    return (
        f"[red]Error:[/] Embedding model mismatch.\n"
        f"  Index uses:   {db_model}\n"
        f"  Config has:   {config_model}\n"
        "  Rebuild the index with a fresh --db, or set embedding.model in memindex.yaml "
        "to match the index."
    )


def err_not_found(kind: str, key: str) -> str:
    """A work item, memory, or collection does not exist."""
    hints = {
        "work item": "  Check the id against your work-item file (--workitems).",
        "memory": "  Run:  memindex memory list --collection <key>  to see memory ids.",
        "collection": "  Run:  memindex status  to see indexed collections.",
    }
    return f"[yellow]{kind.capitalize()} not found:[/] '{key}'\n" + hints.get(
        kind, "  Check the identifier and try again."
    )


def err_workitems_file(path: str, reason: str) -> str:
    """Work-item YAML file is missing or malformed."""
    return (
        f"[red]Error:[/] Cannot read work items from '{path}': {reason}\n"
        "  Pass  --workitems <file.yaml>  with a top-level 'workitems:' list."
    )


def err_config(message: str) -> str:
    """memindex.yaml or the global config is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix memindex.yaml (project) or ~/.memindex/config.yaml (global)."
    )
