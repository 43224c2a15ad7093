from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AssistantQueryRequest(CamelModel):
    query: str
    top_k: int | None = Field(default=None, alias="topK", ge=1, le=50)
    source_type: Literal["message", "document"] | None = Field(default=None, alias="sourceType")


class ContextItem(BaseModel):
    content: str
    metadata: dict[str, Any]
    score: float


class AssistantQueryResponse(BaseModel):
    response: str
    context: list[ContextItem]


class ProcessFileRequest(CamelModel):
    file_id: str = Field(alias="fileId", min_length=1)


class ProcessFileResponse(CamelModel):
    success: bool = True
    chunks_processed: int = Field(alias="chunksProcessed")


class CreateMessageRequest(CamelModel):
    content: str
    channel_id: str = Field(alias="channelId", min_length=1)
    parent_message_id: str | None = Field(default=None, alias="parentMessageId")


class UpdateMessageRequest(BaseModel):
    content: str


class MessageOut(BaseModel):
    id: str
    channel_id: str
    channel_name: str
    user_id: str
    user_name: str
    content: str
    parent_message_id: str | None
    has_reply: bool
    created_at: str
    updated_at: str | None = None


class FileOut(BaseModel):
    id: str
    channel_id: str
    channel_name: str
    user_id: str
    user_name: str
    file_name: str
    storage_path: str
    size_bytes: int
    created_at: str


class UploadFileResponse(BaseModel):
    file: FileOut
    ingestion: Literal["queued", "unsupported"]


class DeleteFileResponse(CamelModel):
    deleted: bool
    entries_removed: int = Field(alias="entriesRemoved")


class ErrorResponse(CamelModel):
    error: str
    chunks_processed: int | None = Field(default=None, alias="chunksProcessed")
