from datetime import UTC, date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_iso(value: Optional[datetime]) -> Optional[str]:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendOtpRequest(CamelModel):
    identifier: str
    type: str = "email"


class VerifyOtpRequest(CamelModel):
    identifier: str
    otp: str
    type: str = "email"


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class ReplyRequest(CamelModel):
    message: str = Field(min_length=1)
    thread_id: str = Field(min_length=1, max_length=64)
    image: Optional[str] = None  # URL of an attached photo


class FoodEntry(CamelModel):
    id: str
    food_item: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    meal_type: str
    calories: Optional[float] = None
    carbs: Optional[float] = None
    proteins: Optional[float] = None
    fats: Optional[float] = None
    consumed_at: str
    notes: Optional[str] = None
    source: Optional[str] = None


class WaterEntry(CamelModel):
    id: str
    amount: float
    unit: str
    consumed_at: str
    notes: Optional[str] = None
    source: Optional[str] = None


MealType = Literal["breakfast", "lunch", "dinner", "snack"]
Gender = Literal["Male", "Female", "Other", "Prefer not to say"]


class FoodCreateRequest(CamelModel):
    food_item: str = Field(min_length=1, max_length=128)
    calories: float = Field(ge=0)
    proteins: Optional[float] = Field(default=None, ge=0)
    carbs: Optional[float] = Field(default=None, ge=0)
    fats: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = None
    meal_type: Optional[MealType] = None
    consumed_at: Optional[str] = None
    notes: Optional[str] = None


class FoodUpdateRequest(CamelModel):
    """Only the fields present in the body are changed; an explicit null
    clears a nutrient back to unknown."""

    food_item: Optional[str] = Field(default=None, min_length=1, max_length=128)
    calories: Optional[float] = Field(default=None, ge=0)
    proteins: Optional[float] = Field(default=None, ge=0)
    carbs: Optional[float] = Field(default=None, ge=0)
    fats: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[float] = Field(default=None, gt=0)
    unit: Optional[str] = None
    meal_type: Optional[MealType] = None
    notes: Optional[str] = None


class BasicInfo(CamelModel):
    name: str = Field(min_length=1, max_length=64)
    date_of_birth: Optional[date] = None
    gender: Gender


class PhysicalInfo(CamelModel):
    height: float = Field(gt=0)
    height_unit: str = "cm"
    weight: float = Field(gt=0)


class HealthInfo(CamelModel):
    medical_conditions: list[str] = []
    activity_level: Optional[str] = None


class DietaryInfo(CamelModel):
    dietary_preference: Optional[str] = None
    liked_foods: list[str] = []
    disliked_foods: list[str] = []


class FitnessInfo(CamelModel):
    fitness_goal: str = Field(min_length=1, max_length=64)


class OnboardingRequest(CamelModel):
    basic_info: BasicInfo
    physical_info: PhysicalInfo
    health_info: HealthInfo = HealthInfo()
    dietary_info: DietaryInfo = DietaryInfo()
    fitness_info: FitnessInfo


class ProfileUpdateRequest(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    height: Optional[str] = Field(default=None, max_length=16)
    weight: Optional[str] = Field(default=None, max_length=16)
    activity_level: Optional[str] = None
    dietary_preference: Optional[str] = None
    liked_foods: Optional[list[str]] = None
    disliked_foods: Optional[list[str]] = None
    fitness_goal: Optional[str] = Field(default=None, max_length=64)
    calorie_target: Optional[int] = Field(default=None, gt=0)
    step_target: Optional[int] = Field(default=None, gt=0)
