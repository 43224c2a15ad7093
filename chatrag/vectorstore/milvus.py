from __future__ import annotations

"""Milvus-backed vector index with namespace partitioning."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from chatrag.rag.errors import IndexUnavailableError
from chatrag.rag.types import IndexEntry, QueryMatch, metadata_from_dict, metadata_to_dict

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    collection: str
    dimension: int
    consistency: str = "Strong"
    index_type: str = "HNSW"
    metric_type: str = "COSINE"
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    hnsw_ef: int = 64
    timeout: float = 30.0
    max_content_length: int = 65535


@dataclass
class MilvusVectorIndex:
    """Milvus vector index storing one row per index entry."""
    config: MilvusConfig

    def __post_init__(self) -> None:
        """Connect to Milvus and ensure the collection exists."""
        from pymilvus import MilvusException, connections

        if self.config.dimension <= 0:
            raise IndexUnavailableError(
                "Embedding dimension must be set before initializing MilvusVectorIndex"
            )
        try:
            connections.connect(
                alias="default",
                uri=self.config.uri,
                token=self.config.token,
                timeout=self.config.timeout,
            )
            self.ensure_collection()
        except MilvusException as exc:
            raise IndexUnavailableError(f"Milvus unavailable: {exc}") from exc

    def ensure_collection(self) -> None:
        """Create collection schema and index when missing."""
        from pymilvus import Collection, CollectionSchema, DataType, FieldSchema, utility

        if utility.has_collection(self.config.collection):
            self.collection = Collection(
                self.config.collection, consistency_level=self.config.consistency
            )
            existing_dim = self._existing_embedding_dim()
            if existing_dim is not None and existing_dim != self.config.dimension:
                raise IndexUnavailableError(
                    "Milvus collection embedding dimension mismatch: "
                    f"{existing_dim} (collection) vs {self.config.dimension} (embedder). "
                    "Update EMBEDDING_DIMENSION or use a new MILVUS_COLLECTION."
                )
            field_names = {schema_field.name for schema_field in self.collection.schema.fields}
            if "entry_id" not in field_names:
                raise IndexUnavailableError(
                    "Milvus collection predates namespaced row keys. "
                    "Run tools/reset_milvus_collection.py --reindex or use a new MILVUS_COLLECTION."
                )
            return

        fields = [
            FieldSchema(name="id", dtype=DataType.VARCHAR, is_primary=True, max_length=512),
            FieldSchema(name="entry_id", dtype=DataType.VARCHAR, max_length=256),
            FieldSchema(name="namespace", dtype=DataType.VARCHAR, max_length=128),
            FieldSchema(name="source_id", dtype=DataType.VARCHAR, max_length=256),
            FieldSchema(name="metadata", dtype=DataType.JSON),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.config.dimension),
        ]
        schema = CollectionSchema(fields=fields, description="Workspace assistant index")
        self.collection = Collection(
            self.config.collection,
            schema,
            consistency_level=self.config.consistency,
        )
        self.collection.create_index(field_name="embedding", index_params=self._index_params())

    def _index_params(self) -> dict[str, Any]:
        if self.config.index_type.upper() == "HNSW":
            return {
                "index_type": "HNSW",
                "metric_type": self.config.metric_type,
                "params": {
                    "M": self.config.hnsw_m,
                    "efConstruction": self.config.hnsw_ef_construction,
                },
            }
        return {
            "index_type": self.config.index_type,
            "metric_type": self.config.metric_type,
            "params": {"nlist": 1024},
        }

    def _existing_embedding_dim(self) -> int | None:
        """Read embedding dimension from existing collection schema."""
        for schema_field in self.collection.schema.fields:
            if schema_field.name != "embedding":
                continue
            params = getattr(schema_field, "params", None) or {}
            dim = params.get("dim")
            return int(dim) if dim is not None else None
        return None

    async def _run(self, operation: str, func: Callable[[], T]) -> T:
        """Run a blocking Milvus call off the event loop."""
        from pymilvus import MilvusException

        try:
            return await asyncio.to_thread(func)
        except MilvusException as exc:
            logger.error(
                "milvus_operation_failed",
                extra={"operation": operation, "collection": self.config.collection},
            )
            raise IndexUnavailableError(f"Milvus {operation} failed: {exc}") from exc

    async def upsert(self, entries: Sequence[IndexEntry], namespace: str) -> int:
        """Upsert entries keyed by id."""
        rows: list[dict[str, Any]] = []
        for entry in entries:
            metadata = metadata_to_dict(entry.metadata)
            metadata["content"] = metadata["content"][: self.config.max_content_length]
            rows.append(
                {
                    "id": _row_key(namespace, entry.id),
                    "entry_id": entry.id,
                    "namespace": namespace,
                    "source_id": entry.metadata.source_id,
                    "metadata": metadata,
                    "embedding": entry.vector,
                }
            )
        if not rows:
            return 0

        def _write() -> int:
            self.collection.upsert(rows, timeout=self.config.timeout)
            self.collection.flush(timeout=self.config.timeout)
            return len(rows)

        return await self._run("upsert", _write)

    async def query(
        self,
        vector: list[float],
        top_k: int,
        namespace: str,
        filter: dict[str, Any] | None = None,
    ) -> list[QueryMatch]:
        """Search the namespace with optional metadata equality filters."""
        if top_k <= 0:
            return []
        expr = self._build_filter_expr(namespace, filter)
        search_params = {"metric_type": self.config.metric_type, "params": {"nprobe": 10}}
        if self.config.index_type.upper() == "HNSW":
            search_params = {
                "metric_type": self.config.metric_type,
                "params": {"ef": max(self.config.hnsw_ef, top_k)},
            }

        def _search() -> Any:
            self.collection.load()
            return self.collection.search(
                data=[vector],
                anns_field="embedding",
                param=search_params,
                limit=top_k,
                expr=expr,
                output_fields=["entry_id", "metadata"],
                timeout=self.config.timeout,
            )

        results = await self._run("search", _search)
        matches = [
            QueryMatch(
                id=hit.entity.get("entry_id"),
                score=float(hit.score),
                metadata=metadata_from_dict(hit.entity.get("metadata") or {}),
            )
            for hit in results[0]
        ]
        matches.sort(key=lambda item: item.score, reverse=True)
        return matches

    async def list_ids(self, prefix: str, namespace: str) -> list[str]:
        pattern = _quote(prefix + "%")
        expr = f"namespace == {_quote(namespace)} and entry_id like {pattern}"

        def _list() -> list[dict[str, Any]]:
            self.collection.load()
            return self.collection.query(
                expr=expr, output_fields=["entry_id"], timeout=self.config.timeout
            )

        rows = await self._run("query", _list)
        return sorted(str(row["entry_id"]) for row in rows)

    async def delete(self, ids: Sequence[str], namespace: str) -> int:
        if not ids:
            return 0
        quoted = ", ".join(_quote(_row_key(namespace, entry_id)) for entry_id in ids)
        return await self._delete_expr(f"id in [{quoted}]")

    async def delete_source(self, source_id: str, namespace: str) -> int:
        return await self._delete_expr(
            f"namespace == {_quote(namespace)} and source_id == {_quote(source_id)}"
        )

    async def _delete_expr(self, expr: str) -> int:
        def _delete() -> int:
            result = self.collection.delete(expr, timeout=self.config.timeout)
            self.collection.flush(timeout=self.config.timeout)
            return int(getattr(result, "delete_count", 0))

        return await self._run("delete", _delete)

    def _build_filter_expr(self, namespace: str, filter: dict[str, Any] | None) -> str:
        """Build a Milvus boolean expression for namespace and metadata filters."""
        clauses = [f"namespace == {_quote(namespace)}"]
        for key, value in (filter or {}).items():
            clauses.append(f"metadata[{_quote(key)}] == {json.dumps(value)}")
        return " and ".join(clauses)

    def stats(self) -> dict[str, Any]:
        """Return collection stats."""
        return {
            "backend": "milvus",
            "entry_count": int(self.collection.num_entities),
            "collection": self.config.collection,
        }

    def health(self) -> dict[str, Any]:
        """Return collection health info."""
        from pymilvus import MilvusException

        try:
            _ = self.collection.num_entities
        except MilvusException as exc:
            return {"backend": "milvus", "ok": False, "detail": str(exc)}
        return {"backend": "milvus", "ok": True, "collection": self.config.collection}


def _quote(value: str) -> str:
    return json.dumps(value)


def _row_key(namespace: str, entry_id: str) -> str:
    """Primary key scoping an entry id to its namespace."""
    return f"{namespace}:{entry_id}"
