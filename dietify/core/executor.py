import asyncio

from dietify.core.messages import ToolCall, ToolMessage
from dietify.observability.logger import get_logger
from dietify.tools.base import ToolContext
from dietify.tools.registry import ToolRegistry

log = get_logger("executor")


class Executor:
    """Runs the tool calls of one assistant turn."""

    def __init__(self, tools: ToolRegistry):
        self.tools = tools

    async def dispatch(self, tool_calls: list[ToolCall], ctx: ToolContext) -> list[ToolMessage]:
        """Execute all calls concurrently and return one result per call in
        request order. An unknown tool name aborts before anything runs."""
        for tc in tool_calls:
            self.tools.resolve(tc.name)

        log.info("dispatching_tool_calls", count=len(tool_calls),
                 tools=[tc.name for tc in tool_calls], thread_id=ctx.thread_id)
        tasks = [asyncio.create_task(self._run_one(tc, ctx)) for tc in tool_calls]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # A fatal call ends the turn; siblings must not finish afterwards
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            if pending:
                log.warning("tool_calls_cancelled", count=len(pending), thread_id=ctx.thread_id)
            raise

    async def _run_one(self, tc: ToolCall, ctx: ToolContext) -> ToolMessage:
        if tc.parse_error:
            log.warning("tool_args_unparseable", tool=tc.name, call_id=tc.id, error=tc.parse_error)
            return ToolMessage(
                tool_call_id=tc.id,
                name=tc.name,
                content=f"Error: could not parse arguments for {tc.name}: {tc.parse_error}",
                is_error=True,
            )

        result = await self.tools.execute(tc.name, tc.args, ctx)
        if result.error:
            log.warning("action_error", tool=tc.name, call_id=tc.id, error=result.error)
        return ToolMessage(
            tool_call_id=tc.id,
            name=tc.name,
            content=result.as_text(),
            is_error=not result.success,
        )
