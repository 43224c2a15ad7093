from __future__ import annotations

"""In-memory vector index for local testing and small workspaces."""

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from chatrag.rag.errors import IndexUnavailableError
from chatrag.rag.types import IndexEntry, QueryMatch, metadata_to_dict


@dataclass
class InMemoryVectorIndex:
    """Simple in-memory vector index with cosine similarity search."""
    namespaces: dict[str, dict[str, IndexEntry]] = field(default_factory=dict)
    dimensions: dict[str, int] = field(default_factory=dict)

    async def upsert(self, entries: Sequence[IndexEntry], namespace: str) -> int:
        """Store entries, overwriting any existing entry with the same id."""
        if not namespace:
            raise IndexUnavailableError("Vector index namespace is not configured")
        bucket = self.namespaces.setdefault(namespace, {})
        for entry in entries:
            self._check_dimension(namespace, entry.vector)
        for entry in entries:
            bucket[entry.id] = entry
        return len(entries)

    async def query(
        self,
        vector: list[float],
        top_k: int,
        namespace: str,
        filter: dict[str, Any] | None = None,
    ) -> list[QueryMatch]:
        """Search stored vectors and apply optional metadata equality filters."""
        if not namespace:
            raise IndexUnavailableError("Vector index namespace is not configured")
        bucket = self.namespaces.get(namespace)
        if not bucket or top_k <= 0:
            return []
        self._check_dimension(namespace, vector)
        scored = [
            QueryMatch(
                id=entry.id,
                score=self._cosine_similarity(vector, entry.vector),
                metadata=entry.metadata,
            )
            for entry in bucket.values()
            if self._matches_filter(entry, filter)
        ]
        scored.sort(key=lambda item: (-item.score, item.id))
        return scored[:top_k]

    async def list_ids(self, prefix: str, namespace: str) -> list[str]:
        bucket = self.namespaces.get(namespace, {})
        return sorted(entry_id for entry_id in bucket if entry_id.startswith(prefix))

    async def delete(self, ids: Sequence[str], namespace: str) -> int:
        bucket = self.namespaces.get(namespace, {})
        removed = 0
        for entry_id in ids:
            if bucket.pop(entry_id, None) is not None:
                removed += 1
        return removed

    async def delete_source(self, source_id: str, namespace: str) -> int:
        bucket = self.namespaces.get(namespace, {})
        stale = [
            entry_id
            for entry_id, entry in bucket.items()
            if entry.metadata.source_id == source_id
        ]
        return await self.delete(stale, namespace)

    def count(self, namespace: str) -> int:
        return len(self.namespaces.get(namespace, {}))

    def _check_dimension(self, namespace: str, vector: list[float]) -> None:
        """Pin the namespace dimension on first write and reject mismatches."""
        expected = self.dimensions.setdefault(namespace, len(vector))
        if len(vector) != expected:
            raise IndexUnavailableError(
                f"Vector dimension {len(vector)} does not match namespace "
                f"{namespace!r} dimension {expected}"
            )

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """Compute cosine similarity between two vectors."""
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)

    def _matches_filter(self, entry: IndexEntry, filter: dict[str, Any] | None) -> bool:
        if not filter:
            return True
        metadata = metadata_to_dict(entry.metadata)
        return all(metadata.get(key) == value for key, value in filter.items())

    def stats(self) -> dict[str, Any]:
        """Return basic stats for the vector index."""
        return {
            "backend": "memory",
            "entry_count": sum(len(bucket) for bucket in self.namespaces.values()),
            "namespaces": {name: len(bucket) for name, bucket in self.namespaces.items()},
        }

    def health(self) -> dict[str, Any]:
        return {"backend": "memory", "ok": True}
