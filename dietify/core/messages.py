"""Conversation message types.

Messages are append-only within a thread. Their order is the replay order
fed back to the model, and the same JSON form is stored in checkpoints.
"""

import uuid
from datetime import UTC, datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ToolCall(BaseModel):
    id: str
    name: str
    args: dict = Field(default_factory=dict)
    # Set when the model's argument JSON could not be parsed
    parse_error: str | None = None


class HumanMessage(BaseModel):
    role: Literal["human"] = "human"
    id: str = Field(default_factory=_new_id)
    content: str
    image_url: str | None = None
    created_at: str = Field(default_factory=_now)


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    id: str = Field(default_factory=_new_id)
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)


class ToolMessage(BaseModel):
    role: Literal["tool"] = "tool"
    id: str = Field(default_factory=_new_id)
    tool_call_id: str
    name: str
    content: str
    is_error: bool = False
    created_at: str = Field(default_factory=_now)


Message = Annotated[Union[HumanMessage, AssistantMessage, ToolMessage], Field(discriminator="role")]

_history_adapter = TypeAdapter(list[Message])


def dump_messages(messages: list) -> list[dict]:
    return [m.model_dump(mode="json") for m in messages]


def load_messages(data: list[dict]) -> list:
    return _history_adapter.validate_python(data or [])


def pending_tool_calls(messages: list) -> list[ToolCall]:
    """Tool calls of the trailing assistant message that have no result yet."""
    for idx in range(len(messages) - 1, -1, -1):
        msg = messages[idx]
        if isinstance(msg, AssistantMessage):
            answered = {
                m.tool_call_id for m in messages[idx + 1:] if isinstance(m, ToolMessage)
            }
            return [tc for tc in msg.tool_calls if tc.id not in answered]
        if isinstance(msg, HumanMessage):
            return []
    return []
