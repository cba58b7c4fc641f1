from typing import Literal

from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from dietify.config import settings
from dietify.intake.store import IntakeStore
from dietify.intake.units import infer_meal_type, parse_quantity, parse_timestamp
from dietify.observability.logger import get_logger
from dietify.tools.base import Tool, ToolArgs, ToolContext, ToolResult

log = get_logger("tools.food")

MealType = Literal["breakfast", "lunch", "dinner", "snack"]


class SaveFoodIntakeArgs(ToolArgs):
    food_item: str = Field(
        description="The name or description of the food consumed. "
        "For example: 'Apple', 'Chicken breast', 'Dal chawal'",
    )
    quantity: str = Field(
        description="The amount consumed with units. For example: '1 medium apple', '150g', '1 cup', '2 slices'",
    )
    calories: float | None = Field(default=None, description="Calorie count if known or estimated.")
    fats: float | None = Field(default=None, description="Fat content in grams if known or estimated.")
    carbs: float | None = Field(default=None, description="Carbohydrate content in grams if known or estimated.")
    proteins: float | None = Field(default=None, description="Protein content in grams if known or estimated.")
    meal_type: MealType | None = Field(
        default=None,
        description="breakfast, lunch, dinner or snack. Inferred from the time when omitted.",
    )
    timestamp: str | None = Field(
        default=None,
        description="ISO timestamp of consumption. If not provided, current time will be used.",
    )
    notes: str | None = Field(default=None, description="Optional free-text notes.")


def describe_nutrition(calories=None, fats=None, carbs=None, proteins=None) -> str:
    parts = []
    if calories is not None:
        parts.append(f"{calories:g} calories")
    if fats is not None:
        parts.append(f"{fats:g}g fats")
    if carbs is not None:
        parts.append(f"{carbs:g}g carbs")
    if proteins is not None:
        parts.append(f"{proteins:g}g proteins")
    return f" ({', '.join(parts)})" if parts else ""


class SaveFoodIntakeTool(Tool):
    name = "saveFoodIntake"
    description = (
        "Save food intake information to track what the user has eaten. "
        "Use this whenever the user mentions eating something other than water. "
        "Can be called multiple times to log different food items."
    )
    timeout_seconds = 15
    args_model = SaveFoodIntakeArgs

    def __init__(self, intake_store: IntakeStore):
        self.intake = intake_store

    async def execute(self, ctx: ToolContext, food_item: str, quantity: str,
                      calories: float | None = None, fats: float | None = None,
                      carbs: float | None = None, proteins: float | None = None,
                      meal_type: str | None = None, timestamp: str | None = None,
                      notes: str | None = None, **kwargs) -> ToolResult:
        user_id = ctx.require_user()
        try:
            consumed_at = parse_timestamp(timestamp, settings.local_timezone)
        except ValueError:
            return ToolResult(success=False, output="", error=f"Invalid timestamp: {timestamp}")

        magnitude, unit = parse_quantity(quantity)
        meal = meal_type or infer_meal_type(consumed_at, settings.local_timezone)

        try:
            entry = await self.intake.add_food(
                user_id,
                food_item=food_item,
                quantity=magnitude,
                unit=unit or None,
                meal_type=meal,
                calories=calories,
                fats=fats,
                carbs=carbs,
                proteins=proteins,
                consumed_at=consumed_at,
                notes=notes,
                source="conversation",
            )
        except SQLAlchemyError as e:
            log.error("food_save_failed", user_id=user_id, error=str(e))
            return ToolResult(success=False, output="", error=f"Failed to save food intake: {e}")

        nutrition = describe_nutrition(calories, fats, carbs, proteins)
        return ToolResult(
            success=True,
            output=f"Stored food intake {entry.id} ({meal}): {quantity} of {food_item}{nutrition}",
        )
