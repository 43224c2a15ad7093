from __future__ import annotations

"""Chat-completion clients and the grounded answer generator."""

from dataclasses import dataclass
import logging
from typing import Protocol

import httpx

from chatrag.rag.errors import GenerationError
from chatrag.rag.types import AnswerResult, RetrievedContext

logger = logging.getLogger(__name__)

DEFAULT_REFUSAL = "I don't know based on the workspace conversations and files I can see."

_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions about the conversations "
    "and files in this team workspace. "
    "Answer only from the provided context. "
    "If the context does not contain the answer, say: "
    f"\"{DEFAULT_REFUSAL}\" "
    "Do not make up information and do not use external knowledge. "
    "When you use a message or file, mention who shared it and where. "
    "Keep the answer concise."
)


def base_system_prompt() -> str:
    """Return the default system prompt for answer generation."""
    return _SYSTEM_PROMPT


def build_user_prompt(query: str, context_block: str) -> str:
    """Fill the user turn with the rendered context and the raw question."""
    return (
        f"Context:\n{context_block}\n\n"
        f"Question: {query}\n\n"
        "Instructions: Use only the context above to answer."
    )


class ChatModel(Protocol):
    """Protocol for hosted chat-completion models."""

    async def complete(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class OpenAIChatModel:
    """Chat model backed by OpenAI-compatible chat completions."""
    api_key: str
    base_url: str
    model: str
    timeout: float
    transport: httpx.AsyncBaseTransport | None = None

    async def complete(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        """Call ``/chat/completions`` and return the first choice's content."""
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise GenerationError(str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise GenerationError("OpenAI response is not valid JSON") from exc

        choices = data.get("choices") or []
        if not choices:
            raise GenerationError("Invalid OpenAI response")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise GenerationError("Invalid OpenAI response content")
        return content


@dataclass(frozen=True)
class OllamaChatModel:
    """Chat model backed by the Ollama chat API."""
    base_url: str
    model: str
    timeout: float
    transport: httpx.AsyncBaseTransport | None = None

    async def complete(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise GenerationError(str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise GenerationError("Ollama response is not valid JSON") from exc
        message = data.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise GenerationError("Invalid LLM response")
        return content


@dataclass(frozen=True)
class LLMAnswerer:
    """Answer generator that prompts a chat model with retrieved context."""
    model: ChatModel
    temperature: float = 0.7
    max_tokens: int = 500
    system_prompt: str = _SYSTEM_PROMPT

    async def answer(self, query: str, context: RetrievedContext) -> AnswerResult:
        """Generate a grounded answer; an empty context still reaches the model."""
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": build_user_prompt(query, context.context_block)},
        ]
        content = await self.model.complete(
            messages, temperature=self.temperature, max_tokens=self.max_tokens
        )
        answer = content.strip()
        if not answer:
            raise GenerationError("Chat model returned an empty answer")
        logger.info(
            "answer_generated",
            extra={"answer_length": len(answer), "sources": len(context.matches)},
        )
        return AnswerResult(answer_text=answer, sources=list(context.matches))


def build_chat_model(
    provider: str,
    *,
    api_key_openai: str | None,
    openai_base_url: str,
    openai_model: str | None,
    ollama_base_url: str,
    ollama_model: str,
    timeout: float,
) -> OpenAIChatModel | OllamaChatModel:
    """Factory for chat models based on provider."""
    normalized = provider.strip().lower()
    if normalized == "openai":
        if not api_key_openai:
            raise GenerationError("OPENAI_API_KEY is required for OpenAI provider")
        if not openai_model:
            raise GenerationError("OPENAI_CHAT_MODEL is required for OpenAI provider")
        return OpenAIChatModel(
            api_key=api_key_openai,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            timeout=timeout,
        )
    if normalized == "ollama":
        return OllamaChatModel(
            base_url=ollama_base_url.rstrip("/"),
            model=ollama_model,
            timeout=timeout,
        )
    raise GenerationError(f"Unsupported LLM provider: {provider}")
