from __future__ import annotations

"""Vector index protocol shared by the in-memory and Milvus backends."""

from typing import Any, Protocol, Sequence

from chatrag.rag.types import IndexEntry, QueryMatch


class VectorIndex(Protocol):
    """Namespace-partitioned nearest-neighbour store keyed by string ids."""

    async def upsert(self, entries: Sequence[IndexEntry], namespace: str) -> int:
        """Create or overwrite entries by id and return the count written."""
        raise NotImplementedError

    async def query(
        self,
        vector: list[float],
        top_k: int,
        namespace: str,
        filter: dict[str, Any] | None = None,
    ) -> list[QueryMatch]:
        """Return up to ``top_k`` matches ordered by descending similarity."""
        raise NotImplementedError

    async def list_ids(self, prefix: str, namespace: str) -> list[str]:
        """Return ids in the namespace that start with ``prefix``."""
        raise NotImplementedError

    async def delete(self, ids: Sequence[str], namespace: str) -> int:
        """Delete entries by id and return the count removed."""
        raise NotImplementedError

    async def delete_source(self, source_id: str, namespace: str) -> int:
        """Delete every entry whose metadata ``source_id`` matches."""
        raise NotImplementedError

    def stats(self) -> dict[str, Any]:
        raise NotImplementedError

    def health(self) -> dict[str, Any]:
        raise NotImplementedError
