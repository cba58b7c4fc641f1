from abc import ABC, abstractmethod
from typing import AsyncIterator

from pydantic import BaseModel, Field


class LLMProviderError(RuntimeError):
    pass


class ToolCallChunk(BaseModel):
    """Fragment of a tool call. Fragments sharing an index belong to one call."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


class LLMChunk(BaseModel):
    content: str = ""
    tool_call_chunks: list[ToolCallChunk] = Field(default_factory=list)
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "base"

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        messages: list,
        tools: list[dict] = None,
    ) -> AsyncIterator[LLMChunk]:
        """Yield response fragments for one model turn.

        ``messages`` are agent messages (human, assistant, tool); ``tools``
        are schemas of the form {"name", "description", "parameters"}.
        """

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def get_models(self) -> list[str]:
        pass
