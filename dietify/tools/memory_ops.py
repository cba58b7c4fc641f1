import uuid

from pydantic import Field

from dietify.memory.store import MemoryStore
from dietify.tools.base import Tool, ToolArgs, ToolContext, ToolResult


class UpsertMemoryArgs(ToolArgs):
    content: str = Field(
        min_length=1,
        description="The main content of the memory. For example: "
        "'User is vegetarian and dislikes paneer.'",
    )
    context: str = Field(
        description="Additional context for the memory. For example: "
        "'Mentioned while planning a weekly diet.'",
    )
    memory_id: str | None = Field(
        default=None,
        description="The memory ID to overwrite. Only provide if updating an existing memory.",
    )


class UpsertMemoryTool(Tool):
    name = "upsertMemory"
    description = (
        "Upsert a memory in the database. If a memory conflicts with an existing one, "
        "update the existing one by passing in the memoryId instead of creating a duplicate. "
        "If the user corrects a memory, update it. Can call multiple times in parallel "
        "if you need to store or update multiple memories."
    )
    timeout_seconds = 10
    args_model = UpsertMemoryArgs

    def __init__(self, memory_store: MemoryStore):
        self.memory = memory_store

    async def execute(self, ctx: ToolContext, content: str, context: str = "",
                      memory_id: str | None = None, **kwargs) -> ToolResult:
        user_id = ctx.require_user()
        mem_id = memory_id or str(uuid.uuid4())
        # Store failures propagate; the registry turns them into an error result
        await self.memory.put(user_id, mem_id, {"content": content, "context": context})
        return ToolResult(success=True, output=f"Stored memory {mem_id}")
