"""Embedding client: batched, order-preserving LiteLLM embeddings.

Every embedding call in memindex goes through :class:`EmbeddingClient`.
Inputs are whitespace-collapsed and truncated to ``max_input_chars`` before
sending, larger inputs are sub-batched by ``max_batch_size`` and results are
concatenated in input order.

There are no retries here: a provider failure surfaces as
:class:`~memindex.errors.EmbeddingProviderError` and the caller decides
whether to skip a file, abort a run, or fail a search.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Sequence

import litellm

from memindex.errors import EmbeddingProviderError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

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
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "huggingface": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (local or unknown provider)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def prepare_text(text: str, max_chars: int) -> str:
    """Collapse whitespace runs to single spaces, strip, and truncate to *max_chars*."""
    return _WHITESPACE_RE.sub(" ", text).strip()[:max_chars]


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int | None = 1536
    max_batch_size: int = 100
    # 8191 tokens at roughly 4 chars per token.
    max_input_chars: int = 8191 * 4


class EmbeddingClient:
    """Async LiteLLM embedding client.

    Args:
        config: Model, expected dimensionality and batching limits.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        if self._config.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    @property
    def model(self) -> str:
        return self._config.model

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per input in input order.

        Inputs beyond ``max_batch_size`` are sent as consecutive sub-batches.

        Raises:
            ValueError: If an input is empty after whitespace normalisation.
            EmbeddingProviderError: If any provider call fails or returns a
                malformed response. No partial result is returned.
        """
        if not texts:
            return []
        prepared = [prepare_text(t, self._config.max_input_chars) for t in texts]
        for i, text in enumerate(prepared):
            if not text:
                raise ValueError(f"Cannot embed empty text (input {i})")

        size = self._config.max_batch_size
        vectors: list[list[float]] = []
        for start in range(0, len(prepared), size):
            vectors.extend(await self._call(prepared[start : start + size]))

        lengths = {len(v) for v in vectors}
        if len(lengths) > 1:
            raise EmbeddingProviderError(
                f"Provider returned vectors of differing lengths: {sorted(lengths)}"
            )
        return vectors

    # ------------------------------------------------------------------
    # Provider call
    # ------------------------------------------------------------------

    async def _call(self, batch: list[str]) -> list[list[float]]:
        logger.debug("Embedding %d input(s) with %s", len(batch), self._config.model)
        try:
            response = await litellm.aembedding(model=self._config.model, input=batch)
        except Exception as exc:
            raise EmbeddingProviderError(str(exc) or type(exc).__name__) from exc

        data = list(_field(response, "data") or [])
        if len(data) != len(batch):
            raise EmbeddingProviderError(
                f"Provider returned {len(data)} embeddings for {len(batch)} inputs"
            )
        if all(_field(item, "index") is not None for item in data):
            data.sort(key=lambda item: _field(item, "index"))

        vectors: list[list[float]] = []
        for item in data:
            embedding = _field(item, "embedding")
            if not embedding:
                raise EmbeddingProviderError("Provider returned an empty embedding")
            vector = [float(v) for v in embedding]
            dims = self._config.dimensions
            if dims is not None and len(vector) != dims:
                raise EmbeddingProviderError(
                    f"Expected {dims}-dimensional embeddings from "
                    f"{self._config.model}, got {len(vector)}"
                )
            vectors.append(vector)
        return vectors


def _field(obj: Any, name: str) -> Any:
    """Read *name* from a dict-like or attribute-style response object."""
    if isinstance(obj, dict):
        return obj.get(name)
    try:
        return obj[name]
    except (KeyError, TypeError, IndexError):
        return getattr(obj, name, None)
