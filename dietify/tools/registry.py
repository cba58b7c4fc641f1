import asyncio
import time
from enum import Enum

from pydantic import ValidationError

from dietify.config import ConfigurationError
from dietify.intake.store import IntakeStore
from dietify.memory.store import MemoryStore
from dietify.observability.logger import get_logger
from dietify.tools.base import Tool, ToolContext, ToolResult
from dietify.tools.food_intake import SaveFoodIntakeTool
from dietify.tools.memory_ops import UpsertMemoryTool
from dietify.tools.water_intake import SaveWaterIntakeTool

log = get_logger("tools")


class UnknownToolError(LookupError):
    """The model asked for a tool outside the registry. Fatal for the run."""


class ToolTimeoutError(TimeoutError):
    pass


class ToolName(str, Enum):
    UPSERT_MEMORY = "upsertMemory"
    SAVE_FOOD_INTAKE = "saveFoodIntake"
    SAVE_WATER_INTAKE = "saveWaterIntake"


class ToolRegistry:
    """Fixed set of tools, dispatched by ToolName with logging and argument
    validation."""

    def __init__(self, memory_store: MemoryStore, intake_store: IntakeStore, timeout_seconds: int | None = None):
        if memory_store is None or intake_store is None:
            raise ConfigurationError("Tool registry requires memory and intake stores")
        self.timeout_seconds = timeout_seconds
        self.tools: dict[ToolName, Tool] = {
            ToolName.UPSERT_MEMORY: UpsertMemoryTool(memory_store),
            ToolName.SAVE_FOOD_INTAKE: SaveFoodIntakeTool(intake_store),
            ToolName.SAVE_WATER_INTAKE: SaveWaterIntakeTool(intake_store),
        }
        for name in self.tools:
            log.info("tool_registered", tool=name.value)

    def resolve(self, tool_name: str) -> Tool:
        try:
            return self.tools[ToolName(tool_name)]
        except ValueError:
            raise UnknownToolError(f"Tool {tool_name} not found") from None

    async def execute(self, tool_name: str, parameters: dict, ctx: ToolContext) -> ToolResult:
        """Run one tool call.

        Handler failures and invalid arguments come back as an unsuccessful
        ToolResult so the model can react. Unknown tools, timeouts and
        missing configuration raise.
        """
        tool = self.resolve(tool_name)
        try:
            args = tool.args_model.model_validate(parameters or {})
        except ValidationError as e:
            log.warning("tool_args_invalid", tool=tool_name, errors=e.error_count())
            return ToolResult(success=False, output="", error=f"Invalid arguments for {tool_name}: {e}")

        timeout = self.timeout_seconds or tool.timeout_seconds
        start = time.time()
        try:
            result = await asyncio.wait_for(tool.execute(ctx, **args.model_dump()), timeout=timeout)
        except asyncio.TimeoutError:
            log.error("tool_timeout", tool=tool_name, timeout=timeout)
            raise ToolTimeoutError(f"Tool {tool_name} timed out after {timeout}s") from None
        except ConfigurationError:
            raise
        except Exception as e:
            log.error("tool_error", tool=tool_name, error=str(e))
            return ToolResult(success=False, output="", error=str(e))

        duration_ms = int((time.time() - start) * 1000)
        log.info("tool_executed",
                 tool=tool_name, success=result.success,
                 duration_ms=duration_ms, user_id=ctx.user_id)
        return result

    def get_tool_schemas(self) -> list[dict]:
        return [tool.get_schema() for tool in self.tools.values()]

    def get_tool_names(self) -> list[str]:
        return [name.value for name in self.tools]
