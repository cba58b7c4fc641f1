import os
import tempfile

# Must be set before any dietify imports that read settings
os.environ["DATA_DIR"] = tempfile.mkdtemp()
os.environ["LOCAL_TIMEZONE"] = "UTC"
os.environ["LLM_PROVIDER"] = "openai"

import json

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dietify.core.checkpoint import CheckpointStore
from dietify.core.loop import ConversationLoop
from dietify.database import init_db
from dietify.intake.store import IntakeStore
from dietify.llm.base import LLMChunk, LLMProvider, LLMProviderError, ToolCallChunk
from dietify.memory.store import MemoryStore
from dietify.tools.registry import ToolRegistry


class ScriptedProvider(LLMProvider):
    """Plays back one scripted list of chunks per model call and records
    what each call was given."""

    name = "scripted"

    def __init__(self, turns=None):
        self.turns = list(turns or [])
        self.calls = []

    def is_available(self) -> bool:
        return True

    def get_models(self) -> list[str]:
        return ["scripted"]

    async def stream(self, system_prompt, messages, tools=None):
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages), "tools": tools})
        if not self.turns:
            raise LLMProviderError("No scripted turn left")
        for chunk in self.turns.pop(0):
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def text_turn(*parts: str) -> list[LLMChunk]:
    return [LLMChunk(content=p) for p in parts] + [LLMChunk(finish_reason="stop")]


def tool_turn(*calls) -> list[LLMChunk]:
    """``calls`` are (call_id, name, args) tuples. Argument JSON is split
    across two fragments the way streaming providers deliver it."""
    chunks = []
    for index, (call_id, name, args) in enumerate(calls):
        raw = args if isinstance(args, str) else json.dumps(args)
        half = len(raw) // 2
        chunks.append(LLMChunk(tool_call_chunks=[ToolCallChunk(index=index, id=call_id, name=name)]))
        chunks.append(LLMChunk(tool_call_chunks=[ToolCallChunk(index=index, arguments=raw[:half])]))
        chunks.append(LLMChunk(tool_call_chunks=[ToolCallChunk(index=index, arguments=raw[half:])]))
    chunks.append(LLMChunk(finish_reason="tool_calls"))
    return chunks


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await init_db(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def memory_store(session_factory):
    return MemoryStore(session_factory)


@pytest.fixture
def intake_store(session_factory):
    return IntakeStore(session_factory, tz="UTC")


@pytest.fixture
def checkpoint_store(session_factory):
    return CheckpointStore(session_factory)


@pytest.fixture
def registry(memory_store, intake_store):
    return ToolRegistry(memory_store, intake_store)


@pytest.fixture
def make_loop(checkpoint_store, memory_store, registry):
    def _make(turns, **kwargs):
        provider = ScriptedProvider(turns)
        return ConversationLoop(provider, checkpoint_store, memory_store, registry, **kwargs), provider

    return _make
