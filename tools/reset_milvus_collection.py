from __future__ import annotations

"""CLI utility to drop and recreate the Milvus collection, optionally reindexing."""

import argparse
import asyncio

from chatrag.app.settings import settings


async def _reindex() -> tuple[int, int]:
    from chatrag.app.dependencies import get_workspace_store
    from chatrag.app.ingestion import ingest_file_row, ingest_message_row
    from chatrag.rag.errors import PipelineError

    store = get_workspace_store()
    written = 0
    failed = 0
    for message_id in store.list_message_ids():
        message = store.get_message(message_id)
        if message is None:
            continue
        try:
            written += (await ingest_message_row(message)).chunks_processed
        except PipelineError as exc:
            failed += 1
            print(f"Message {message_id} failed: {type(exc).__name__}")
    for file_id in store.list_file_ids():
        stored = store.get_file(file_id)
        if stored is None:
            continue
        try:
            written += (await ingest_file_row(stored)).chunks_processed
        except PipelineError as exc:
            failed += 1
            print(f"File {stored.file_name} failed: {type(exc).__name__}")
    return written, failed


def main() -> None:
    """Reset the configured Milvus collection using app settings."""
    parser = argparse.ArgumentParser(description="Drop and recreate Milvus collection.")
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Re-ingest every stored message and file after recreating the collection.",
    )
    args = parser.parse_args()
    collection = settings.milvus_collection

    from pymilvus import connections, utility

    connections.connect(alias="default", uri=settings.milvus_uri, token=settings.milvus_token)

    if utility.has_collection(collection):
        print(f"Dropping collection: {collection}")
        utility.drop_collection(collection)

    from chatrag.app.dependencies import get_vector_index, reset_pipeline_cache

    reset_pipeline_cache()
    _ = get_vector_index()  # recreates the collection when the milvus backend is active
    print(f"Recreated collection: {collection}")

    if args.reindex:
        written, failed = asyncio.run(_reindex())
        print(f"Reindexed {written} entries ({failed} records failed)")


if __name__ == "__main__":
    main()
