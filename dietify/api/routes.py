from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from dietify.api.auth import get_app_state, get_current_user
from dietify.api.schemas import (
    FoodCreateRequest, FoodEntry, FoodUpdateRequest, ReplyRequest, WaterEntry, utc_iso,
)
from dietify.api.streaming import format_sse, stream_reply
from dietify.config import settings
from dietify.core.messages import HumanMessage, dump_messages
from dietify.intake.units import infer_meal_type, parse_timestamp
from dietify.observability.logger import get_logger

log = get_logger("api")

router = APIRouter(prefix="/api/v1")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _resolve_day(day: date | None) -> date:
    return day or datetime.now(ZoneInfo(settings.local_timezone)).date()


def food_entry(e) -> dict:
    return FoodEntry(
        id=e.id, food_item=e.food_item, quantity=e.quantity, unit=e.unit, meal_type=e.meal_type,
        calories=e.calories, carbs=e.carbs, proteins=e.proteins, fats=e.fats,
        consumed_at=utc_iso(e.consumed_at), notes=e.notes, source=e.source,
    ).model_dump(by_alias=True)


def water_entry(e) -> dict:
    return WaterEntry(
        id=e.id, amount=e.amount, unit=e.unit, consumed_at=utc_iso(e.consumed_at),
        notes=e.notes, source=e.source,
    ).model_dump(by_alias=True)


@router.post("/reply")
async def reply(req: ReplyRequest, user: dict = Depends(get_current_user)):
    """Stream the assistant's answer to one message as server-sent events."""
    loop = get_app_state()["conversation_loop"]
    if loop.is_running(req.thread_id):
        raise HTTPException(status_code=409, detail="A reply is already in progress for this thread")
    owner = await loop.checkpoints.owner(req.thread_id)
    if owner is not None and owner != user["user_id"]:
        raise HTTPException(status_code=403, detail="Thread belongs to another user")

    message = HumanMessage(content=req.message, image_url=req.image)
    log.info("reply_requested", thread_id=req.thread_id, user_id=user["user_id"], has_image=bool(req.image))
    events = stream_reply(loop, req.thread_id, user["user_id"], message)
    return StreamingResponse(
        (format_sse(event) async for event in events),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/reply/{thread_id}/history")
async def reply_history(thread_id: str, user: dict = Depends(get_current_user)):
    loop = get_app_state()["conversation_loop"]
    owner = await loop.checkpoints.owner(thread_id)
    if owner is None:
        raise HTTPException(status_code=404, detail="Thread not found")
    if owner != user["user_id"]:
        raise HTTPException(status_code=403, detail="Thread belongs to another user")
    messages = await loop.history(thread_id)
    return {"threadId": thread_id, "messages": dump_messages(messages)}


@router.get("/user-food/today")
async def food_today(day: date | None = Query(None, alias="date"), user: dict = Depends(get_current_user)):
    summary = await get_app_state()["intake"].food_summary(user["user_id"], _resolve_day(day))
    items = [food_entry(e) for e in summary["items"]]
    return {
        "success": True,
        "data": {
            "date": summary["date"],
            "items": items,
            "totals": {
                "calories": summary["total_calories"],
                "proteins": summary["total_proteins"],
                "carbs": summary["total_carbs"],
                "fats": summary["total_fats"],
            },
            "unknown": summary["unknown_nutrients"],
        },
    }


@router.get("/user-water/today")
async def water_today(
    day: date | None = Query(None, alias="date"),
    unit: str = Query("ml", pattern="^(ml|oz)$"),
    user: dict = Depends(get_current_user),
):
    summary = await get_app_state()["intake"].water_summary(user["user_id"], _resolve_day(day), unit=unit)
    items = [water_entry(e) for e in summary["items"]]
    return {
        "success": True,
        "data": {"date": summary["date"], "items": items, "total": summary["total"], "unit": summary["unit"]},
    }


@router.post("/user-food")
async def add_food(req: FoodCreateRequest, user: dict = Depends(get_current_user)):
    try:
        consumed_at = parse_timestamp(req.consumed_at, settings.local_timezone)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid consumed date format") from None
    entry = await get_app_state()["intake"].add_food(
        user["user_id"],
        food_item=req.food_item.strip(),
        calories=req.calories,
        proteins=req.proteins,
        carbs=req.carbs,
        fats=req.fats,
        quantity=req.quantity,
        unit=(req.unit or "").strip() or None,
        meal_type=req.meal_type or infer_meal_type(consumed_at, settings.local_timezone),
        consumed_at=consumed_at,
        notes=(req.notes or "").strip() or None,
        source="app",
    )
    return {"success": True, "message": "Food item added successfully", "data": food_entry(entry)}


@router.put("/user-food/{entry_id}")
async def update_food(entry_id: str, req: FoodUpdateRequest, user: dict = Depends(get_current_user)):
    fields = req.model_dump(exclude_unset=True)
    if fields.get("food_item") is None:
        fields.pop("food_item", None)
    if fields.get("meal_type") is None:
        fields.pop("meal_type", None)
    entry = await get_app_state()["intake"].update_food(user["user_id"], entry_id, **fields)
    if entry is None:
        raise HTTPException(status_code=404, detail="Food item not found or access denied")
    return {"success": True, "message": "Food item updated successfully", "data": food_entry(entry)}


@router.delete("/user-food/{entry_id}")
async def delete_food(entry_id: str, user: dict = Depends(get_current_user)):
    if not await get_app_state()["intake"].delete_food(user["user_id"], entry_id):
        raise HTTPException(status_code=404, detail="Food item not found or access denied")
    return {"success": True, "message": "Food item deleted successfully"}
