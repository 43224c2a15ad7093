from __future__ import annotations

"""Offline extractive answerer and the answerer protocol."""

from dataclasses import dataclass
from typing import Protocol

from chatrag.rag.llm import DEFAULT_REFUSAL
from chatrag.rag.retrieval import render_context_line
from chatrag.rag.types import AnswerResult, RetrievedContext


class Answerer(Protocol):
    async def answer(self, query: str, context: RetrievedContext) -> AnswerResult:
        raise NotImplementedError


@dataclass(frozen=True)
class ExtractiveAnswerer:
    """Answer with the highest scoring match, without calling a model."""
    max_chars: int = 480

    async def answer(self, query: str, context: RetrievedContext) -> AnswerResult:
        """Generate an extractive answer from context."""
        if not context.matches:
            return AnswerResult(answer_text=DEFAULT_REFUSAL, sources=[])
        best = max(context.matches, key=lambda match: match.score)
        snippet = self._truncate(render_context_line(best.metadata).strip())
        return AnswerResult(
            answer_text=f"Based on the workspace context: {snippet}",
            sources=list(context.matches),
        )

    def _truncate(self, text: str) -> str:
        """Trim text to the max character budget without cutting words."""
        if len(text) <= self.max_chars:
            return text
        return text[: self.max_chars].rsplit(" ", 1)[0] + "..."
