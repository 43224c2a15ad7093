from __future__ import annotations

"""FastAPI application entrypoint for the workspace assistant service."""

import hashlib
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatrag.app.dependencies import (
    get_assistant,
    get_blob_store,
    get_ingestion_queue,
    get_vector_index,
    get_workspace_store,
)
from chatrag.app.ingestion import ingest_file_row
from chatrag.app.metrics import QUERY_FAILURES, metrics_middleware, metrics_response
from chatrag.app.schemas import (
    AssistantQueryRequest,
    AssistantQueryResponse,
    ContextItem,
    CreateMessageRequest,
    DeleteFileResponse,
    ErrorResponse,
    FileOut,
    MessageOut,
    ProcessFileRequest,
    ProcessFileResponse,
    UpdateMessageRequest,
    UploadFileResponse,
)
from chatrag.app.security import AuthContext, require_api_key
from chatrag.app.settings import settings
from chatrag.loaders.extract import supported_suffixes
from chatrag.loaders.object_store import ObjectNotFoundError, ObjectStoreError
from chatrag.rag.embeddings import EmbeddingConfigError
from chatrag.rag.errors import (
    EmptyQueryError,
    GenerationError,
    IndexUnavailableError,
    PartialBatchFailure,
    PipelineError,
    ProviderError,
    UnsupportedFormatError,
)
from chatrag.rag.events import RecordCreated
from chatrag.rag.types import DOCUMENT_SOURCE, MESSAGE_SOURCE, metadata_to_dict
from chatrag.workspace.store import WorkspaceStoreError

logger = logging.getLogger(__name__)

_PUBLIC_ERRORS: dict[type[PipelineError], str] = {
    EmptyQueryError: "Query must not be empty",
    UnsupportedFormatError: "Unsupported or unreadable document format",
    ProviderError: "Embedding provider failed",
    EmbeddingConfigError: "Embedding provider is not configured",
    GenerationError: "Assistant model failed to respond",
    IndexUnavailableError: "Vector index unavailable",
    PartialBatchFailure: "Document was only partially processed",
}


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("application_startup")
    yield
    await get_ingestion_queue().close()
    logger.info("application_shutdown")


app = FastAPI(title="Workspace Assistant", version="0.1.0", lifespan=lifespan)


def _public_error(exc: PipelineError) -> str:
    """Return a safe, user-facing message for a pipeline error."""
    for error_type, message in _PUBLIC_ERRORS.items():
        if isinstance(exc, error_type):
            return message
    return "Failed to process request"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


async def _read_upload_bytes(upload: UploadFile, max_bytes: int | None) -> bytes:
    """Stream upload bytes with a hard size limit."""
    if not max_bytes or max_bytes <= 0:
        return await upload.read()
    buffer = bytearray()
    while True:
        chunk = await upload.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File exceeds maximum size of {max_bytes} bytes",
            )
    return bytes(buffer)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as ``{"error": ...}`` bodies."""
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse({"error": detail}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Turn any uncaught pipeline error into a structured 500 response."""
    logger.error(
        "pipeline_error",
        extra={
            "request_id": _request_id(request),
            "path": request.url.path,
            "detail": type(exc).__name__,
            "stage": exc.stage,
        },
    )
    return JSONResponse({"error": _public_error(exc)}, status_code=500)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render anything unexpected as a generic ``{"error": ...}`` 500."""
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": _request_id(request),
            "path": request.url.path,
            "detail": type(exc).__name__,
        },
    )
    return JSONResponse({"error": "Failed to process request"}, status_code=500)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Simple health probe for uptime checks."""
    return {"status": "ok"}


@app.get("/stats")
async def stats(auth: AuthContext = Depends(require_api_key)) -> dict[str, object]:
    """Return vector index stats and health."""
    index = get_vector_index()
    queue = get_ingestion_queue()
    return {
        **index.stats(),
        "health": index.health(),
        "ingestion": {"processed": queue.processed, "failed": queue.failed},
    }


@app.post(
    "/api/ai-assistant",
    response_model=AssistantQueryResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def ai_assistant(
    request: AssistantQueryRequest,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> AssistantQueryResponse | JSONResponse:
    """Answer a question about workspace conversations and files."""
    request_id = _request_id(http_request)
    logger.info(
        "query_received",
        extra={
            "request_id": request_id,
            "query_length": len(request.query),
            "query_hash": hashlib.sha256(request.query.encode("utf-8")).hexdigest(),
            "top_k": request.top_k,
            "source_type": request.source_type,
            "user_id": auth.user_id,
        },
    )
    try:
        result = await get_assistant().ask(
            request.query,
            top_k=request.top_k,
            source_type=request.source_type,
            request_id=request_id,
        )
    except EmptyQueryError as exc:
        return JSONResponse({"error": _public_error(exc)}, status_code=400)
    except PipelineError as exc:
        QUERY_FAILURES.labels(exc.stage or "unknown", type(exc).__name__).inc()
        logger.error(
            "query_failed",
            extra={"request_id": request_id, "stage": exc.stage, "detail": type(exc).__name__},
        )
        return JSONResponse({"error": _public_error(exc)}, status_code=500)
    logger.info(
        "query_completed",
        extra={
            "request_id": request_id,
            "answer_length": len(result.answer_text),
            "sources": len(result.sources),
        },
    )
    return AssistantQueryResponse(
        response=result.answer_text,
        context=[
            ContextItem(
                content=match.metadata.content,
                metadata={"id": match.id, **metadata_to_dict(match.metadata)},
                score=match.score,
            )
            for match in result.sources
        ],
    )


@app.post(
    "/api/files/process",
    response_model=ProcessFileResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def process_file(
    request: ProcessFileRequest,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> ProcessFileResponse | JSONResponse:
    """Chunk, embed, and index a stored file, reporting the chunk count."""
    request_id = _request_id(http_request)
    stored = get_workspace_store().get_file(request.file_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="File not found")
    try:
        report = await ingest_file_row(stored, request_id)
    except PartialBatchFailure as exc:
        return JSONResponse(
            {"error": _public_error(exc), "chunksProcessed": exc.chunks_written},
            status_code=500,
        )
    except PipelineError as exc:
        return JSONResponse(
            {"error": _public_error(exc), "chunksProcessed": 0}, status_code=500
        )
    except ObjectNotFoundError:
        return JSONResponse(
            {"error": "Stored file content is missing", "chunksProcessed": 0}, status_code=500
        )
    except ObjectStoreError:
        return JSONResponse(
            {"error": "File download failed", "chunksProcessed": 0}, status_code=500
        )
    return ProcessFileResponse(success=True, chunks_processed=report.chunks_processed)


@app.post("/api/messages", response_model=MessageOut)
async def create_message(
    request: CreateMessageRequest,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> MessageOut:
    """Store a message and hand it to the ingestion consumer."""
    store = get_workspace_store()
    if store.get_channel(request.channel_id) is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    try:
        message = store.create_message(
            channel_id=request.channel_id,
            user_id=auth.user_id,
            user_name=auth.user_name,
            content=request.content,
            parent_message_id=request.parent_message_id,
        )
    except WorkspaceStoreError as exc:
        logger.error("message_insert_failed", extra={"detail": str(exc)})
        raise HTTPException(status_code=500, detail="Failed to create message") from exc
    get_ingestion_queue().publish(
        RecordCreated(
            source_type=MESSAGE_SOURCE,
            record_id=message.id,
            request_id=_request_id(http_request),
        )
    )
    return MessageOut(**message.as_dict())


@app.patch("/api/messages/{message_id}", response_model=MessageOut)
async def update_message(
    message_id: str,
    request: UpdateMessageRequest,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> MessageOut:
    """Edit a message and re-ingest it under the same index id."""
    store = get_workspace_store()
    existing = store.get_message(message_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if existing.user_id != auth.user_id:
        raise HTTPException(status_code=403, detail="Only the author can edit a message")
    updated = store.update_message(message_id, request.content)
    if updated is None:
        raise HTTPException(status_code=404, detail="Message not found")
    get_ingestion_queue().publish(
        RecordCreated(
            source_type=MESSAGE_SOURCE,
            record_id=updated.id,
            request_id=_request_id(http_request),
        )
    )
    return MessageOut(**updated.as_dict())


@app.post("/api/files", response_model=UploadFileResponse)
async def upload_file(
    http_request: Request,
    file: UploadFile = File(...),
    channel_id: str = Form(..., alias="channelId"),
    auth: AuthContext = Depends(require_api_key),
) -> UploadFileResponse:
    """Store an uploaded file; indexing happens out of band."""
    store = get_workspace_store()
    if store.get_channel(channel_id) is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    file_name = Path(file.filename or "upload").name
    data = await _read_upload_bytes(file, settings.file_max_bytes)
    file_id = str(uuid.uuid4())
    storage_path = f"{channel_id}/{file_id}/{file_name}"
    try:
        get_blob_store().put(storage_path, data)
    except ObjectStoreError as exc:
        logger.error("file_store_failed", extra={"file_name": file_name, "detail": str(exc)})
        raise HTTPException(status_code=500, detail="File upload failed") from exc
    stored = store.create_file(
        channel_id=channel_id,
        user_id=auth.user_id,
        user_name=auth.user_name,
        file_name=file_name,
        storage_path=storage_path,
        size_bytes=len(data),
        file_id=file_id,
    )
    ingestion = "unsupported"
    if Path(file_name).suffix.lower() in supported_suffixes():
        get_ingestion_queue().publish(
            RecordCreated(
                source_type=DOCUMENT_SOURCE,
                record_id=stored.id,
                request_id=_request_id(http_request),
            )
        )
        ingestion = "queued"
    return UploadFileResponse(file=FileOut(**stored.as_dict()), ingestion=ingestion)


@app.delete("/api/files/{file_id}", response_model=DeleteFileResponse)
async def delete_file(
    file_id: str,
    http_request: Request,
    auth: AuthContext = Depends(require_api_key),
) -> DeleteFileResponse:
    """Delete a file record, its blob, and every index entry derived from it."""
    store = get_workspace_store()
    stored = store.get_file(file_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="File not found")
    removed = await get_vector_index().delete_source(file_id, settings.namespace)
    try:
        get_blob_store().delete(stored.storage_path)
    except ObjectStoreError as exc:
        logger.warning("file_blob_delete_failed", extra={"file_id": file_id, "detail": str(exc)})
    store.delete_file(file_id)
    logger.info(
        "file_deleted",
        extra={"request_id": _request_id(http_request), "file_id": file_id, "entries": removed},
    )
    return DeleteFileResponse(deleted=True, entries_removed=removed)
