import json

from dietify.core.messages import AssistantMessage, HumanMessage, ToolMessage
from dietify.config import settings
from dietify.llm.base import LLMChunk, LLMProvider, LLMProviderError, ToolCallChunk
from dietify.observability.logger import get_logger

log = get_logger("llm.openai")


def to_openai_messages(system_prompt: str, messages: list) -> list[dict]:
    wire = [{"role": "system", "content": system_prompt}]
    for msg in messages:
        if isinstance(msg, HumanMessage):
            if msg.image_url:
                wire.append({
                    "role": "user",
                    "content": [
                        {"type": "text", "text": msg.content},
                        {"type": "image_url", "image_url": {"url": msg.image_url}},
                    ],
                })
            else:
                wire.append({"role": "user", "content": msg.content})
        elif isinstance(msg, AssistantMessage):
            entry = {"role": "assistant", "content": msg.content or None}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                    }
                    for tc in msg.tool_calls
                ]
            wire.append(entry)
        elif isinstance(msg, ToolMessage):
            wire.append({"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content})
    return wire


def to_openai_tools(tools: list[dict] | None) -> list[dict]:
    return [{"type": "function", "function": schema} for schema in (tools or [])]


class OpenAIProvider(LLMProvider):
    """Chat completions over the OpenAI API, or an Azure OpenAI deployment
    when ``azure=True``."""

    name = "openai"

    def __init__(self, azure: bool = False):
        self.azure = azure
        if azure:
            self.name = "azure"
        self._client = None

    def _get_client(self):
        if self._client is None and self.is_available():
            if self.azure:
                from openai import AsyncAzureOpenAI

                self._client = AsyncAzureOpenAI(
                    api_key=settings.azure_openai_api_key,
                    azure_endpoint=settings.azure_openai_endpoint,
                    api_version=settings.azure_openai_api_version,
                )
            else:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._client

    def is_available(self) -> bool:
        if self.azure:
            return bool(settings.azure_openai_api_key and settings.azure_openai_endpoint)
        return bool(settings.openai_api_key)

    def get_models(self) -> list[str]:
        if self.azure:
            return [settings.azure_openai_deployment]
        return ["gpt-4.1", "gpt-4o", "gpt-4o-mini"]

    async def stream(self, system_prompt: str, messages: list, tools: list[dict] = None):
        client = self._get_client()
        if not client:
            raise LLMProviderError(f"{self.name} API key not configured")

        model = settings.azure_openai_deployment if self.azure else settings.openai_model
        kwargs = {
            "model": model,
            "messages": to_openai_messages(system_prompt, messages),
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
            kwargs["tool_choice"] = "auto"

        try:
            response = await client.chat.completions.create(**kwargs)
            async for chunk in response:
                if chunk.usage:
                    yield LLMChunk(
                        input_tokens=chunk.usage.prompt_tokens,
                        output_tokens=chunk.usage.completion_tokens,
                    )
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                tool_chunks = [
                    ToolCallChunk(
                        index=tc.index,
                        id=tc.id,
                        name=tc.function.name if tc.function else None,
                        arguments=(tc.function.arguments or "") if tc.function else "",
                    )
                    for tc in (delta.tool_calls or [])
                ]
                yield LLMChunk(
                    content=delta.content or "",
                    tool_call_chunks=tool_chunks,
                    finish_reason=choice.finish_reason,
                )
        except Exception as e:
            log.error("openai_error", error=str(e), model=model, provider=self.name)
            raise
