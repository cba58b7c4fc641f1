"""Profile, onboarding and full intake history for the signed-in user."""

import math
from datetime import UTC, date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from dietify.api.auth import get_app_state, get_current_user
from dietify.api.routes import food_entry, water_entry
from dietify.api.schemas import OnboardingRequest, ProfileUpdateRequest, utc_iso
from dietify.intake.units import ML_PER_OZ
from dietify.models import User
from dietify.observability.logger import get_logger

log = get_logger("api.users")

router = APIRouter(prefix="/api/v1/user", tags=["user"])

# request field -> User column
_PROFILE_COLUMNS = {
    "name": "name",
    "mobile_number": "mobile_number",
    "gender": "gender",
    "date_of_birth": "date_of_birth",
    "height": "height",
    "weight": "weight",
    "activity_level": "activity_level",
    "dietary_preference": "dietary_preference",
    "liked_foods": "food_liking",
    "disliked_foods": "food_disliking",
    "fitness_goal": "fitness_goal",
    "calorie_target": "calorie_target",
    "step_target": "step_target",
}


def age_from(date_of_birth: str | None, today: date | None = None) -> int | None:
    if not date_of_birth:
        return None
    born = date.fromisoformat(date_of_birth)
    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def profile_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "personalInfo": {
            "name": user.name,
            "dateOfBirth": user.date_of_birth,
            "age": age_from(user.date_of_birth),
            "gender": user.gender,
            "mobileNumber": user.mobile_number,
        },
        "physicalInfo": {"height": user.height, "weight": user.weight},
        "healthInfo": {
            "medicalConditions": user.medical_conditions or [],
            "activityLevel": user.activity_level,
        },
        "dietaryInfo": {
            "dietaryPreference": user.dietary_preference,
            "foodLiking": user.food_liking or [],
            "foodDisliking": user.food_disliking or [],
        },
        "fitnessInfo": {
            "fitnessGoal": user.fitness_goal,
            "stepTarget": user.step_target,
            "calorieTarget": user.calorie_target,
        },
        "accountInfo": {
            "verified": bool(user.verified),
            "isNewUser": bool(user.is_new_user),
            "onboardingCompleted": bool(user.onboarding_completed),
            "lastLoginAt": utc_iso(user.last_login_at),
            "createdAt": utc_iso(user.created_at),
            "updatedAt": utc_iso(user.updated_at),
        },
    }


def pagination(total_count: int, limit: int, offset: int) -> dict:
    return {
        "currentPage": offset // limit + 1,
        "totalPages": math.ceil(total_count / limit),
        "totalCount": total_count,
        "limit": limit,
        "offset": offset,
        "hasNext": offset + limit < total_count,
        "hasPrevious": offset > 0,
    }


async def _load_user(session, user_id: str) -> User:
    row = await session.get(User, user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    return row


@router.post("/onboarding")
async def complete_onboarding(req: OnboardingRequest, user: dict = Depends(get_current_user)):
    async with get_app_state()["session_factory"]() as session:
        row = await _load_user(session, user["user_id"])
        basic, physical = req.basic_info, req.physical_info
        row.name = basic.name.strip()
        row.date_of_birth = basic.date_of_birth.isoformat() if basic.date_of_birth else None
        row.gender = basic.gender
        row.height = f"{physical.height:g}{physical.height_unit}"
        row.weight = f"{physical.weight:g}"
        row.medical_conditions = req.health_info.medical_conditions
        row.activity_level = req.health_info.activity_level
        row.dietary_preference = req.dietary_info.dietary_preference
        row.food_liking = req.dietary_info.liked_foods
        row.food_disliking = req.dietary_info.disliked_foods
        row.fitness_goal = req.fitness_info.fitness_goal
        row.onboarding_completed = True
        row.onboarding_completed_at = datetime.now(UTC)
        row.is_new_user = False
        await session.commit()
        await session.refresh(row)
    log.info("onboarding_completed", user_id=row.id)
    return {
        "success": True,
        "message": "Onboarding completed successfully",
        "data": {"user": profile_payload(row)},
    }


@router.get("/profile")
async def get_profile(user: dict = Depends(get_current_user)):
    async with get_app_state()["session_factory"]() as session:
        row = await _load_user(session, user["user_id"])
    return {"success": True, "message": "User profile retrieved successfully", "data": {"user": profile_payload(row)}}


@router.put("/profile")
async def update_profile(req: ProfileUpdateRequest, user: dict = Depends(get_current_user)):
    fields = req.model_dump(exclude_unset=True, exclude_none=True)
    async with get_app_state()["session_factory"]() as session:
        row = await _load_user(session, user["user_id"])
        for key, value in fields.items():
            if isinstance(value, date):
                value = value.isoformat()
            elif isinstance(value, str):
                value = value.strip()
            setattr(row, _PROFILE_COLUMNS[key], value)
        await session.commit()
        await session.refresh(row)
    log.info("profile_updated", user_id=row.id, fields=sorted(fields))
    return {"success": True, "message": "Profile updated successfully", "data": {"user": profile_payload(row)}}


@router.get("/calories/all")
async def all_calories(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
):
    history = await get_app_state()["intake"].food_history(user["user_id"], limit=limit, offset=offset)
    totals = history["totals"]
    return {
        "success": True,
        "message": "Calorie intake logs retrieved successfully",
        "data": {
            "logs": [food_entry(e) for e in history["items"]],
            "pagination": pagination(history["total_count"], limit, offset),
            "summary": {
                "totalCalories": totals["calories"],
                "totalMacros": {"carbs": totals["carbs"], "proteins": totals["proteins"], "fats": totals["fats"]},
                "totalEntries": history["total_count"],
            },
        },
    }


@router.get("/water/all")
async def all_water(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
):
    history = await get_app_state()["intake"].water_history(user["user_id"], limit=limit, offset=offset)
    total_ml = history["total_ml"]
    return {
        "success": True,
        "message": "Water intake logs retrieved successfully",
        "data": {
            "logs": [water_entry(e) for e in history["items"]],
            "pagination": pagination(history["total_count"], limit, offset),
            "summary": {
                "totalMl": round(total_ml),
                "totalOz": round(total_ml / ML_PER_OZ, 2),
                "totalLiters": round(total_ml / 1000, 2),
                "totalEntries": history["total_count"],
            },
        },
    }
