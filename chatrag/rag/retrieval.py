from __future__ import annotations

"""Query-time retrieval and context rendering with provenance."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from chatrag.rag.embeddings import EmbeddingClient
from chatrag.rag.errors import EmptyQueryError
from chatrag.rag.types import (
    DocumentMetadata,
    Metadata,
    MessageMetadata,
    QueryMatch,
    RetrievedContext,
)
from chatrag.vectorstore.base import VectorIndex

logger = logging.getLogger(__name__)

NO_CONTEXT_PLACEHOLDER = "No relevant context found."


def format_timestamp(value: str) -> str:
    """Render an ISO timestamp as ``YYYY-MM-DD HH:MM UTC``; unparseable values pass through."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def render_context_line(metadata: Metadata) -> str:
    """Render one match's metadata as a provenance-tagged context line."""
    when = format_timestamp(metadata.created_at)
    if isinstance(metadata, MessageMetadata):
        return (
            f"Message from {metadata.author_name} in #{metadata.channel_name} "
            f"at {when}:\n{metadata.content}"
        )
    if isinstance(metadata, DocumentMetadata):
        page = f" (page {metadata.page_number})" if metadata.page_number is not None else ""
        return (
            f"Excerpt from {metadata.file_name}{page} shared by {metadata.author_name} "
            f"in #{metadata.channel_name} at {when}:\n{metadata.content}"
        )
    raise TypeError(f"Unhandled metadata variant: {type(metadata).__name__}")


def build_context_block(matches: list[QueryMatch]) -> str:
    """Join rendered matches with blank lines, or return the placeholder."""
    if not matches:
        return NO_CONTEXT_PLACEHOLDER
    return "\n\n".join(render_context_line(match.metadata) for match in matches)


@dataclass
class Retriever:
    """Embed a query, fetch nearest neighbours, and render the context block."""
    embedder: EmbeddingClient
    index: VectorIndex
    namespace: str
    top_k: int = 5

    async def embed_query(self, query: str) -> list[float]:
        if not query or not query.strip():
            raise EmptyQueryError("Query must not be empty")
        return await self.embedder.embed(query)

    async def search(
        self,
        vector: list[float],
        top_k: int | None = None,
        source_type: str | None = None,
    ) -> list[QueryMatch]:
        limit = top_k or self.top_k
        filter = {"source_type": source_type} if source_type else None
        matches = await self.index.query(vector, limit, self.namespace, filter=filter)
        matches = sorted(matches, key=lambda item: item.score, reverse=True)[:limit]
        return matches

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        source_type: str | None = None,
    ) -> RetrievedContext:
        vector = await self.embed_query(query)
        matches = await self.search(vector, top_k=top_k, source_type=source_type)
        logger.info(
            "retrieval_complete",
            extra={
                "results": len(matches),
                "query_length": len(query),
                "source_type": source_type,
            },
        )
        return self.build(query, matches)

    def build(self, query: str, matches: list[QueryMatch]) -> RetrievedContext:
        return RetrievedContext(
            query=query,
            matches=matches,
            context_block=build_context_block(matches),
        )
