import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import text_turn, tool_turn

from dietify.config import ConfigurationError
from dietify.core.checkpoint import ThreadOwnershipError
from dietify.core.executor import Executor
from dietify.core.loop import INTERRUPTED_RESULT, ConversationLoop, StepLimitExceeded, ThreadBusyError
from dietify.core.messages import AssistantMessage, HumanMessage, ToolCall, ToolMessage
from dietify.core.state import AgentPhase, AgentState
from dietify.llm.base import LLMChunk, LLMProvider, LLMProviderError
from dietify.tools.base import ToolContext, ToolResult
from dietify.tools.registry import ToolName, ToolTimeoutError, UnknownToolError


async def drain(loop, thread_id, user_id, text):
    return [chunk async for chunk in loop.run(thread_id, user_id, HumanMessage(content=text))]


@pytest.mark.asyncio
class TestConversationLoop:
    async def test_plain_answer_reaches_done(self, make_loop, checkpoint_store):
        loop, provider = make_loop([text_turn("Namaste! ", "Kaise ho?")])
        chunks = await drain(loop, "t1", "u1", "Hi")

        assert "".join(c.content for c in chunks) == "Namaste! Kaise ho?"
        assert len(provider.calls) == 1

        state = await checkpoint_store.load("t1")
        assert state.phase is AgentPhase.DONE
        assert [m.role for m in state.messages] == ["human", "assistant"]
        assert state.messages[1].content == "Namaste! Kaise ho?"
        assert not loop.is_running("t1")

    async def test_tool_results_follow_request_order(self, make_loop, checkpoint_store, intake_store):
        loop, provider = make_loop([
            tool_turn(
                ("call_water", "saveWaterIntake", {"amount": 2, "unit": "cups", "timestamp": "2025-06-01T09:00:00Z"}),
                ("call_food", "saveFoodIntake", {"foodItem": "Idli", "quantity": "3 pieces",
                                                 "timestamp": "2025-06-01T09:00:00Z"}),
            ),
            text_turn("Logged both!"),
        ])
        await drain(loop, "t1", "u1", "2 cups water and 3 idli")

        state = await checkpoint_store.load("t1")
        roles = [m.role for m in state.messages]
        assert roles == ["human", "assistant", "tool", "tool", "assistant"]
        assistant = state.messages[1]
        assert [tc.id for tc in assistant.tool_calls] == ["call_water", "call_food"]
        assert assistant.tool_calls[0].args["unit"] == "cups"
        results = state.messages[2:4]
        assert [r.tool_call_id for r in results] == ["call_water", "call_food"]
        assert all(not r.is_error for r in results)
        assert "500 ml" in results[0].content

        # Second model call sees the tool results
        assert [m.role for m in provider.calls[1]["messages"]] == roles[:4]
        assert len(await intake_store.water_for_day("u1", date(2025, 6, 1))) == 1
        assert len(await intake_store.food_for_day("u1", date(2025, 6, 1))) == 1

    async def test_tool_failure_is_fed_back(self, make_loop, checkpoint_store):
        loop, _ = make_loop([
            tool_turn(("c1", "saveWaterIntake", {"unit": "ml"})),
            text_turn("Sorry, that was not saved."),
        ])
        chunks = await drain(loop, "t1", "u1", "some water")

        assert "".join(c.content for c in chunks) == "Sorry, that was not saved."
        state = await checkpoint_store.load("t1")
        result = state.messages[2]
        assert isinstance(result, ToolMessage)
        assert result.is_error
        assert result.content.startswith("Error: Invalid arguments")
        assert state.phase is AgentPhase.DONE

    async def test_unparseable_arguments_are_error_result(self, make_loop, checkpoint_store):
        loop, _ = make_loop([
            tool_turn(("c1", "saveWaterIntake", '{"amount": 2, "unit": ')),
            text_turn("Could not log that."),
        ])
        await drain(loop, "t1", "u1", "water")

        state = await checkpoint_store.load("t1")
        assert state.messages[1].tool_calls[0].parse_error
        assert state.messages[2].is_error
        assert "could not parse arguments" in state.messages[2].content

    async def test_unknown_tool_aborts_before_dispatch(self, make_loop, checkpoint_store, intake_store):
        loop, provider = make_loop([
            tool_turn(
                ("c1", "saveWaterIntake", {"amount": 1, "unit": "cup", "timestamp": "2025-06-01T09:00:00Z"}),
                ("c2", "orderPizza", {}),
            ),
        ])
        with pytest.raises(UnknownToolError):
            await drain(loop, "t1", "u1", "water and pizza")

        assert len(provider.calls) == 1
        assert await intake_store.water_for_day("u1", date(2025, 6, 1)) == []
        state = await checkpoint_store.load("t1")
        assert state.phase is AgentPhase.DISPATCHING
        assert not loop.is_running("t1")

    async def test_provider_error_propagates(self, make_loop):
        loop, _ = make_loop([[LLMChunk(content="Hel"), LLMProviderError("connection reset")]])
        with pytest.raises(LLMProviderError):
            await drain(loop, "t1", "u1", "Hi")
        assert not loop.is_running("t1")

    async def test_memories_reach_the_prompt(self, make_loop, memory_store):
        await memory_store.put("u1", "m1", {"content": "Vegetarian", "context": "onboarding"})
        loop, provider = make_loop([text_turn("ok")])
        await drain(loop, "t1", "u1", "Suggest dinner")
        assert "[m1]: " in provider.calls[0]["system_prompt"]
        assert "Vegetarian" in provider.calls[0]["system_prompt"]
        assert {t["name"] for t in provider.calls[0]["tools"]} == {
            "upsertMemory", "saveFoodIntake", "saveWaterIntake",
        }

    async def test_resume_appends_to_checkpointed_history(self, make_loop, checkpoint_store):
        first, _ = make_loop([text_turn("Hello!")])
        await drain(first, "t1", "u1", "Hi")
        before = (await checkpoint_store.load("t1")).messages

        # A new loop instance has nothing in memory
        second, provider = make_loop([text_turn("You said hi earlier.")])
        await drain(second, "t1", "u1", "What did I say?")

        after = (await checkpoint_store.load("t1")).messages
        assert after[:2] == before
        assert [m.role for m in after] == ["human", "assistant", "human", "assistant"]
        assert provider.calls[0]["messages"] == after[:3]

    async def test_interrupted_dispatch_is_closed_not_rerun(self, make_loop, checkpoint_store, intake_store):
        await checkpoint_store.ensure_thread("t1", "u1")
        state = AgentState(thread_id="t1", user_id="u1")
        human = HumanMessage(content="1 cup water")
        state.messages.append(human)
        await checkpoint_store.append(state, [human])
        call = ToolCall(id="c1", name="saveWaterIntake", args={"amount": 1, "unit": "cup"})
        assistant = AssistantMessage(tool_calls=[call])
        state.messages.append(assistant)
        state.phase = AgentPhase.DISPATCHING
        await checkpoint_store.append(state, [assistant])

        loop, provider = make_loop([text_turn("ok")])
        await drain(loop, "t1", "u1", "hello again")

        history = (await checkpoint_store.load("t1")).messages
        assert [m.role for m in history] == ["human", "assistant", "tool", "human", "assistant"]
        assert history[2].tool_call_id == "c1"
        assert history[2].is_error
        assert await intake_store.water_for_day("u1", date.today()) == []

    async def test_concurrent_run_on_same_thread_rejected(self, make_loop):
        loop, _ = make_loop([text_turn("a", "b")])
        first = loop.run("t1", "u1", HumanMessage(content="Hi"))
        await first.__anext__()
        assert loop.is_running("t1")

        with pytest.raises(ThreadBusyError):
            await drain(loop, "t1", "u1", "Hi again")

        await first.aclose()
        assert not loop.is_running("t1")

    async def test_other_users_thread_rejected(self, make_loop):
        loop, _ = make_loop([text_turn("mine"), text_turn("yours")])
        await drain(loop, "t1", "u1", "Hi")
        with pytest.raises(ThreadOwnershipError):
            await drain(loop, "t1", "u2", "Hi")

    async def test_step_limit(self, make_loop):
        call = ("c", "upsertMemory", {"content": "x", "context": "y"})
        loop, _ = make_loop([tool_turn(call) for _ in range(5)], max_steps=2)
        with pytest.raises(StepLimitExceeded):
            await drain(loop, "t1", "u1", "loop forever")

    async def test_zero_step_limit_is_respected(self, make_loop):
        loop, provider = make_loop([text_turn("x")], max_steps=0)
        with pytest.raises(StepLimitExceeded):
            await drain(loop, "t1", "u1", "Hi")
        assert provider.calls == []

    async def test_timed_out_call_cancels_its_siblings(self, make_loop, registry, intake_store, checkpoint_store):
        memory_tool = registry.tools[ToolName.UPSERT_MEMORY]
        food_tool = registry.tools[ToolName.SAVE_FOOD_INTAKE]
        save_food = food_tool.execute

        async def stall(ctx, **kwargs):
            await asyncio.sleep(5)

        async def slow_food(ctx, **kwargs):
            await asyncio.sleep(0.2)
            return await save_food(ctx, **kwargs)

        memory_tool.timeout_seconds = 0.05
        memory_tool.execute = stall
        food_tool.execute = slow_food
        loop, _ = make_loop([
            tool_turn(
                ("c1", "upsertMemory", {"content": "Likes poha", "context": "breakfast"}),
                ("c2", "saveFoodIntake", {"foodItem": "Poha", "quantity": "1 plate",
                                          "timestamp": "2025-06-01T09:00:00Z"}),
            ),
            text_turn("That was not saved, want me to try again?"),
        ])
        with pytest.raises(ToolTimeoutError):
            await drain(loop, "t1", "u1", "Had poha")

        # Give a leaked task time to commit
        await asyncio.sleep(0.3)
        assert await intake_store.food_for_day("u1", date(2025, 6, 1)) == []

        await drain(loop, "t1", "u1", "Did you log it?")
        history = (await checkpoint_store.load("t1")).messages
        food_result = next(m for m in history if isinstance(m, ToolMessage) and m.tool_call_id == "c2")
        assert food_result.content == INTERRUPTED_RESULT
        assert await intake_store.food_for_day("u1", date(2025, 6, 1)) == []

    async def test_missing_user_is_configuration_error(self, make_loop):
        loop, _ = make_loop([text_turn("x")])
        with pytest.raises(ConfigurationError):
            await drain(loop, "t1", "", "Hi")

    async def test_model_stall_times_out(self, checkpoint_store, memory_store, registry):
        class StalledProvider(LLMProvider):
            name = "stalled"

            def is_available(self):
                return True

            def get_models(self):
                return []

            async def stream(self, system_prompt, messages, tools=None):
                await asyncio.sleep(5)
                yield LLMChunk(content="too late")

        loop = ConversationLoop(StalledProvider(), checkpoint_store, memory_store, registry,
                                llm_timeout_seconds=0.05)
        with pytest.raises(LLMProviderError, match="timed out"):
            await drain(loop, "t1", "u1", "Hi")


def test_loop_requires_bindings():
    with pytest.raises(ConfigurationError):
        ConversationLoop(None, MagicMock(), MagicMock(), MagicMock())


@pytest.mark.asyncio
class TestExecutor:
    async def test_results_keep_request_order_not_completion_order(self):
        tools = MagicMock()

        async def execute(name, args, ctx):
            await asyncio.sleep(args["delay"])
            return ToolResult(success=True, output=f"{name} done")

        tools.execute = AsyncMock(side_effect=execute)
        executor = Executor(tools)
        calls = [
            ToolCall(id="slow", name="saveFoodIntake", args={"delay": 0.05}),
            ToolCall(id="fast", name="saveWaterIntake", args={"delay": 0}),
        ]
        results = await executor.dispatch(calls, ToolContext(user_id="u1"))
        assert [r.tool_call_id for r in results] == ["slow", "fast"]
        assert results[0].content == "saveFoodIntake done"

    async def test_fatal_error_cancels_pending_calls(self):
        finished = []

        async def execute(name, args, ctx):
            if name == "upsertMemory":
                await asyncio.sleep(0.01)
                raise ToolTimeoutError("upsertMemory timed out")
            await asyncio.sleep(0.2)
            finished.append(name)
            return ToolResult(success=True, output="saved")

        tools = MagicMock()
        tools.execute = AsyncMock(side_effect=execute)
        calls = [ToolCall(id="a", name="upsertMemory"), ToolCall(id="b", name="saveFoodIntake")]
        with pytest.raises(ToolTimeoutError):
            await Executor(tools).dispatch(calls, ToolContext(user_id="u1"))

        await asyncio.sleep(0.3)
        assert finished == []

    async def test_unknown_name_checked_before_any_execution(self):
        tools = MagicMock()
        tools.resolve.side_effect = [None, UnknownToolError("nope")]
        tools.execute = AsyncMock()
        executor = Executor(tools)
        calls = [ToolCall(id="a", name="saveWaterIntake"), ToolCall(id="b", name="nope")]
        with pytest.raises(UnknownToolError):
            await executor.dispatch(calls, ToolContext(user_id="u1"))
        tools.execute.assert_not_called()
