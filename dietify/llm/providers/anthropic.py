from dietify.core.messages import AssistantMessage, HumanMessage, ToolMessage
from dietify.config import settings
from dietify.llm.base import LLMChunk, LLMProvider, LLMProviderError, ToolCallChunk
from dietify.observability.logger import get_logger

log = get_logger("llm.anthropic")


def to_anthropic_messages(messages: list) -> list[dict]:
    """Anthropic has no tool role: results go back as tool_result blocks in a
    user turn. Consecutive user-side messages share one turn, and assistant
    turns with no content are left out since the API rejects empty blocks."""
    wire: list[dict] = []

    def add_user(blocks: list[dict]):
        if wire and wire[-1]["role"] == "user":
            wire[-1]["content"].extend(blocks)
        else:
            wire.append({"role": "user", "content": blocks})

    for msg in messages:
        if isinstance(msg, HumanMessage):
            blocks = [{"type": "text", "text": msg.content}]
            if msg.image_url:
                blocks.append({"type": "image", "source": {"type": "url", "url": msg.image_url}})
            add_user(blocks)
        elif isinstance(msg, AssistantMessage):
            blocks = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.args})
            if blocks:
                wire.append({"role": "assistant", "content": blocks})
        elif isinstance(msg, ToolMessage):
            add_user([{
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
                "is_error": msg.is_error,
            }])
    return wire


def to_anthropic_tools(tools: list[dict] | None) -> list[dict]:
    return [
        {"name": t["name"], "description": t["description"], "input_schema": t["parameters"]}
        for t in (tools or [])
    ]


class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None and settings.anthropic_api_key:
            import anthropic

            self._client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._client

    def is_available(self) -> bool:
        return bool(settings.anthropic_api_key)

    def get_models(self) -> list[str]:
        return [settings.anthropic_model]

    async def stream(self, system_prompt: str, messages: list, tools: list[dict] = None):
        client = self._get_client()
        if not client:
            raise LLMProviderError("Anthropic API key not configured")

        model = settings.anthropic_model
        kwargs = {
            "model": model,
            "max_tokens": settings.llm_max_tokens,
            "temperature": settings.llm_temperature,
            "system": system_prompt,
            "messages": to_anthropic_messages(messages),
        }
        if tools:
            kwargs["tools"] = to_anthropic_tools(tools)
            kwargs["tool_choice"] = {"type": "auto"}

        try:
            async with client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    if event.type == "content_block_start" and event.content_block.type == "tool_use":
                        yield LLMChunk(tool_call_chunks=[ToolCallChunk(
                            index=event.index,
                            id=event.content_block.id,
                            name=event.content_block.name,
                        )])
                    elif event.type == "content_block_delta":
                        if event.delta.type == "text_delta":
                            yield LLMChunk(content=event.delta.text)
                        elif event.delta.type == "input_json_delta":
                            yield LLMChunk(tool_call_chunks=[ToolCallChunk(
                                index=event.index,
                                arguments=event.delta.partial_json,
                            )])
                    elif event.type == "message_delta":
                        yield LLMChunk(
                            finish_reason=event.delta.stop_reason,
                            output_tokens=event.usage.output_tokens,
                        )
        except Exception as e:
            log.error("anthropic_error", error=str(e), model=model)
            raise
