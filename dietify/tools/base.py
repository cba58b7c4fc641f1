from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from dietify.config import ConfigurationError


class ToolResult(BaseModel):
    success: bool
    output: str
    error: str | None = None

    def as_text(self) -> str:
        if self.success:
            return self.output
        return f"Error: {self.error or 'unknown error'}"


class ToolArgs(BaseModel):
    """Tool arguments are camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ToolContext(BaseModel):
    """Identity every tool call runs under."""

    user_id: str | None = None
    thread_id: str | None = None

    def require_user(self) -> str:
        if not self.user_id:
            raise ConfigurationError("Tool call has no user identity")
        return self.user_id


class Tool(ABC):
    """Base class for all assistant tools."""

    name: str = "base_tool"
    description: str = "A tool"
    timeout_seconds: int = 30
    args_model: type[ToolArgs] = ToolArgs

    @abstractmethod
    async def execute(self, ctx: ToolContext, **kwargs) -> ToolResult:
        pass

    def get_schema(self) -> dict:
        """Return JSON schema for the tool parameters."""
        parameters = self.args_model.model_json_schema(by_alias=True)
        parameters.pop("title", None)
        return {
            "name": self.name,
            "description": self.description,
            "parameters": parameters,
        }
