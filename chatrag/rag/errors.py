from __future__ import annotations

"""Error taxonomy shared by the ingestion, retrieval, and answer pipelines."""


class PipelineError(RuntimeError):
    """Base class for errors raised inside the RAG pipelines."""
    stage: str | None = None


class EmptyInputError(PipelineError):
    """Raised when text to embed is empty or whitespace-only."""
    pass


class EmptyQueryError(PipelineError):
    """Raised when an assistant query is empty."""
    pass


class UnsupportedFormatError(PipelineError):
    """Raised when plain text cannot be extracted from an uploaded document."""
    pass


class ProviderError(PipelineError):
    """Raised when the embedding provider fails or times out."""
    pass


class GenerationError(PipelineError):
    """Raised when the chat-completion provider fails or times out."""
    pass


class IndexUnavailableError(PipelineError):
    """Raised when the vector index is unreachable or misconfigured."""
    pass


class PartialBatchFailure(PipelineError):
    """Raised when document ingestion stops after some chunks were written."""

    def __init__(
        self,
        message: str,
        *,
        chunks_written: int,
        failed_batch: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.chunks_written = chunks_written
        self.failed_batch = failed_batch
        self.cause = cause
