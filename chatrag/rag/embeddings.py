from __future__ import annotations

"""Embedding providers and vector validation."""

import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from chatrag.rag.errors import EmptyInputError, PipelineError, ProviderError

_TOKEN_RE = re.compile(r"[a-z0-9]+")

logger = logging.getLogger(__name__)


class EmbeddingConfigError(PipelineError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingClient(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    async def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one embedding vector per input text, in order."""
        raise NotImplementedError


def require_text(text: str) -> str:
    """Reject empty input before any provider call is made."""
    if not text or not text.strip():
        raise EmptyInputError("Cannot embed empty text")
    return text


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise ProviderError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if not isinstance(value, (int, float)):
            raise ProviderError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise ProviderError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding model."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model)


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    async def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        require_text(text)
        return self._embed_sync(text)

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        for text in texts:
            require_text(text)
        return [self._embed_sync(text) for text in texts]

    def _embed_sync(self, text: str) -> list[float]:
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


@dataclass
class OpenAIEmbedder:
    """Embedding provider using the OpenAI embeddings API."""
    api_key: str
    model: str
    dimension: int
    timeout: float = 30.0
    base_url: str | None = None
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate OpenAI configuration and create a client."""
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAIEmbedder")
        resolved = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for OpenAI embeddings when model is unknown"
                )
            self.dimension = resolved
        elif resolved is not None and self.dimension != resolved:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {resolved} for model {self.model}"
            )
        if self.client is not None:
            return
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAIEmbedder")
        from openai import AsyncOpenAI

        # Retries are the caller's decision, so the SDK must not retry on its own.
        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    async def embed(self, text: str) -> list[float]:
        """Embed text using the OpenAI embeddings API."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts with one provider call."""
        inputs = [require_text(text) for text in texts]
        if not inputs:
            return []
        from openai import OpenAIError

        try:
            response = await self.client.embeddings.create(model=self.model, input=inputs)
        except OpenAIError as exc:
            logger.error(
                "embedding_provider_failed",
                extra={"model": self.model, "inputs": len(inputs), "detail": type(exc).__name__},
            )
            raise ProviderError(str(exc)) from exc
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(inputs):
            raise ProviderError(
                f"Embedding response size mismatch: expected {len(inputs)}, got {len(data)}"
            )
        return [validate_vector(list(item.embedding), self.dimension) for item in data]
