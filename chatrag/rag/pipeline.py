from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from chatrag.rag.answerer import Answerer
from chatrag.rag.errors import PipelineError
from chatrag.rag.retrieval import Retriever
from chatrag.rag.types import AnswerResult

logger = logging.getLogger(__name__)


class QueryStage(str, Enum):
    IDLE = "idle"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AssistantPipeline:
    """Linear query path: embed, retrieve, generate.

    No state is kept between stages beyond the current request. A failure at
    any stage is tagged with that stage and re-raised unchanged.
    """
    retriever: Retriever
    answerer: Answerer

    async def ask(
        self,
        query: str,
        top_k: int | None = None,
        source_type: str | None = None,
        request_id: str | None = None,
    ) -> AnswerResult:
        stage = QueryStage.IDLE
        try:
            stage = self._enter(QueryStage.EMBEDDING, request_id)
            vector = await self.retriever.embed_query(query)
            stage = self._enter(QueryStage.RETRIEVING, request_id)
            matches = await self.retriever.search(vector, top_k=top_k, source_type=source_type)
            context = self.retriever.build(query, matches)
            stage = self._enter(QueryStage.GENERATING, request_id)
            result = await self.answerer.answer(query, context)
        except PipelineError as exc:
            exc.stage = stage.value
            logger.warning(
                "query_stage",
                extra={
                    "request_id": request_id,
                    "stage": QueryStage.FAILED.value,
                    "failed_at": stage.value,
                    "detail": type(exc).__name__,
                },
            )
            raise
        self._enter(QueryStage.DONE, request_id)
        return result

    def _enter(self, stage: QueryStage, request_id: str | None) -> QueryStage:
        logger.debug("query_stage", extra={"request_id": request_id, "stage": stage.value})
        return stage
