import asyncio
import json
import uuid
from typing import AsyncIterator

from dietify.config import ConfigurationError, settings
from dietify.core.checkpoint import CheckpointStore, ThreadOwnershipError
from dietify.core.executor import Executor
from dietify.core.messages import (
    AssistantMessage, HumanMessage, ToolCall, ToolMessage, pending_tool_calls,
)
from dietify.core.prompts import build_system_prompt
from dietify.core.state import AgentPhase, AgentState
from dietify.llm.base import LLMChunk, LLMProvider, LLMProviderError
from dietify.memory.store import MemoryStore
from dietify.observability.logger import get_logger
from dietify.tools.base import ToolContext
from dietify.tools.registry import ToolRegistry

log = get_logger("conversation_loop")

INTERRUPTED_RESULT = "Error: this tool call was interrupted before it completed and was not retried."


class ThreadBusyError(RuntimeError):
    """A run is already in flight for the thread."""


class StepLimitExceeded(RuntimeError):
    pass


class ReplyAccumulator:
    """Folds streamed fragments into one AssistantMessage."""

    def __init__(self):
        self._content: list[str] = []
        self._calls: dict[int, dict] = {}

    def add(self, chunk: LLMChunk):
        if chunk.content:
            self._content.append(chunk.content)
        for fragment in chunk.tool_call_chunks:
            slot = self._calls.setdefault(fragment.index, {"id": None, "name": None, "arguments": []})
            if fragment.id:
                slot["id"] = fragment.id
            if fragment.name:
                slot["name"] = fragment.name
            if fragment.arguments:
                slot["arguments"].append(fragment.arguments)

    def message(self) -> AssistantMessage:
        calls = []
        for index in sorted(self._calls):
            slot = self._calls[index]
            raw = "".join(slot["arguments"])
            args, error = {}, None
            if raw.strip():
                try:
                    args = json.loads(raw)
                except json.JSONDecodeError as e:
                    error = str(e)
                else:
                    if not isinstance(args, dict):
                        args, error = {}, "arguments must be a JSON object"
            calls.append(ToolCall(
                id=slot["id"] or f"call_{uuid.uuid4().hex[:12]}",
                name=slot["name"] or "",
                args=args,
                parse_error=error,
            ))
        return AssistantMessage(content="".join(self._content), tool_calls=calls)


async def _with_timeout(stream: AsyncIterator[LLMChunk], seconds: float) -> AsyncIterator[LLMChunk]:
    """Re-yield ``stream``, failing if any fragment takes longer than ``seconds``."""
    iterator = stream.__aiter__()
    try:
        while True:
            try:
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout=seconds)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                raise LLMProviderError(f"Model response timed out after {seconds}s") from None
            yield chunk
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


class ConversationLoop:
    """Invoking -> Dispatching -> Invoking ... -> Done, for one thread at a time.

    Every transition is checkpointed before the next one starts. Model output
    is re-yielded fragment by fragment as it arrives.
    """

    def __init__(
        self,
        provider: LLMProvider,
        checkpoints: CheckpointStore,
        memory: MemoryStore,
        tools: ToolRegistry,
        max_steps: int | None = None,
        memory_limit: int | None = None,
        llm_timeout_seconds: float | None = None,
    ):
        if provider is None or checkpoints is None or memory is None or tools is None:
            raise ConfigurationError("Conversation loop is missing a provider or store binding")
        self.provider = provider
        self.checkpoints = checkpoints
        self.memory = memory
        self.tools = tools
        self.executor = Executor(tools)
        self.max_steps = settings.agent_max_steps if max_steps is None else max_steps
        self.memory_limit = settings.memory_search_limit if memory_limit is None else memory_limit
        self.llm_timeout_seconds = (
            settings.llm_timeout_seconds if llm_timeout_seconds is None else llm_timeout_seconds
        )
        self._active_threads: set[str] = set()

    def is_running(self, thread_id: str) -> bool:
        return thread_id in self._active_threads

    async def run(self, thread_id: str, user_id: str, message: HumanMessage) -> AsyncIterator[LLMChunk]:
        if not user_id:
            raise ConfigurationError("A run requires a user identity")
        if thread_id in self._active_threads:
            raise ThreadBusyError(f"Thread {thread_id} already has a run in progress")
        self._active_threads.add(thread_id)
        try:
            await self.checkpoints.ensure_thread(thread_id, user_id)
            state = await self._resume(thread_id, user_id)

            state.messages.append(message)
            state.phase = AgentPhase.INVOKING
            await self.checkpoints.append(state, [message])
            log.info("run_started", thread_id=thread_id, user_id=user_id, history=len(state.messages))

            invocations = 0
            while state.phase is not AgentPhase.DONE:
                if state.phase is AgentPhase.INVOKING:
                    invocations += 1
                    if invocations > self.max_steps:
                        raise StepLimitExceeded(
                            f"Thread {thread_id} exceeded {self.max_steps} model calls in one run"
                        )
                    async for chunk in self._invoke(state):
                        yield chunk
                else:
                    await self._dispatch(state)

            log.info("run_complete", thread_id=thread_id, invocations=invocations, step=state.step)
        finally:
            self._active_threads.discard(thread_id)

    async def history(self, thread_id: str) -> list:
        state = await self.checkpoints.load(thread_id)
        return state.messages if state else []

    async def _resume(self, thread_id: str, user_id: str) -> AgentState:
        state = await self.checkpoints.load(thread_id)
        if state is None:
            return AgentState(thread_id=thread_id, user_id=user_id)
        if state.user_id != user_id:
            raise ThreadOwnershipError(f"Thread {thread_id} belongs to another user")

        # Close calls left unanswered by a crash mid-dispatch; never re-run them
        pending = pending_tool_calls(state.messages)
        if pending:
            results = [
                ToolMessage(tool_call_id=tc.id, name=tc.name, content=INTERRUPTED_RESULT, is_error=True)
                for tc in pending
            ]
            state.messages.extend(results)
            state.phase = AgentPhase.INVOKING
            await self.checkpoints.append(state, results)
            log.warning("interrupted_dispatch_closed", thread_id=thread_id, calls=len(pending))
        return state

    async def _invoke(self, state: AgentState) -> AsyncIterator[LLMChunk]:
        memories = await self.memory.search(state.user_id, limit=self.memory_limit)
        system_prompt = build_system_prompt(memories)

        reply = ReplyAccumulator()
        stream = self.provider.stream(system_prompt, list(state.messages), self.tools.get_tool_schemas())
        async for chunk in _with_timeout(stream, self.llm_timeout_seconds):
            reply.add(chunk)
            yield chunk

        assistant = reply.message()
        state.messages.append(assistant)
        state.phase = AgentPhase.DISPATCHING if assistant.tool_calls else AgentPhase.DONE
        await self.checkpoints.append(state, [assistant])
        log.info("model_replied",
                 thread_id=state.thread_id, tool_calls=len(assistant.tool_calls),
                 memories=len(memories), next_phase=state.phase.value)

    async def _dispatch(self, state: AgentState):
        calls = state.messages[-1].tool_calls
        ctx = ToolContext(user_id=state.user_id, thread_id=state.thread_id)
        results = await self.executor.dispatch(calls, ctx)
        state.messages.extend(results)
        state.phase = AgentPhase.INVOKING
        await self.checkpoints.append(state, results)
