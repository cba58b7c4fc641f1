from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from dietify.config import settings
from dietify.intake.store import IntakeStore
from dietify.intake.units import parse_timestamp, to_storage_unit
from dietify.observability.logger import get_logger
from dietify.tools.base import Tool, ToolArgs, ToolContext, ToolResult

log = get_logger("tools.water")


class SaveWaterIntakeArgs(ToolArgs):
    amount: float = Field(description="The numerical amount of water consumed. For example: 250, 8, 1.5")
    unit: str = Field(description="The unit of measurement. For example: 'ml', 'oz', 'cups', 'liters', 'fl oz'")
    timestamp: str | None = Field(
        default=None,
        description="ISO timestamp of consumption. If not provided, current time will be used.",
    )
    notes: str | None = Field(default=None, description="Optional free-text notes.")
    entry_id: str | None = Field(
        default=None,
        description="The entry ID to overwrite. Only provide if updating an existing water intake entry.",
    )


class SaveWaterIntakeTool(Tool):
    name = "saveWaterIntake"
    description = (
        "Save water intake information to track hydration. "
        "Use this only when the user mentions drinking water. "
        "Can be called multiple times to log different water intake events."
    )
    timeout_seconds = 15
    args_model = SaveWaterIntakeArgs

    def __init__(self, intake_store: IntakeStore, storage_unit: str | None = None):
        self.intake = intake_store
        self.storage_unit = storage_unit or settings.water_storage_unit

    async def execute(self, ctx: ToolContext, amount: float, unit: str,
                      timestamp: str | None = None, notes: str | None = None,
                      entry_id: str | None = None, **kwargs) -> ToolResult:
        user_id = ctx.require_user()
        try:
            consumed_at = parse_timestamp(timestamp, settings.local_timezone)
        except ValueError:
            return ToolResult(success=False, output="", error=f"Invalid timestamp: {timestamp}")

        stored_amount, stored_unit = to_storage_unit(amount, unit, self.storage_unit)
        try:
            entry, created = await self.intake.upsert_water(
                user_id,
                entry_id,
                amount=stored_amount,
                unit=stored_unit,
                consumed_at=consumed_at,
                notes=notes,
                source="conversation",
            )
        except (SQLAlchemyError, PermissionError) as e:
            log.error("water_save_failed", user_id=user_id, entry_id=entry_id, error=str(e))
            return ToolResult(success=False, output="", error=f"Failed to save water intake: {e}")

        verb = "Stored" if created else "Updated"
        return ToolResult(
            success=True,
            output=f"{verb} water intake {entry.id}: {stored_amount:g} {stored_unit}",
        )
