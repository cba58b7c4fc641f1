from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import func, select

from dietify.config import ConfigurationError
from dietify.intake.units import convert_water
from dietify.models import CaloriesIntakeLog, WaterIntakeLog
from dietify.observability.logger import get_logger

log = get_logger("intake_store")

NUTRIENTS = ("calories", "proteins", "carbs", "fats")


def day_bounds(day: date, tz: str) -> tuple[datetime, datetime]:
    """UTC start (inclusive) and end (exclusive) of a local calendar day."""
    start = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz))
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class IntakeStore:
    """Food and water logs per user."""

    def __init__(self, session_factory, tz: str = "UTC"):
        if session_factory is None:
            raise ConfigurationError("Intake store requires a session factory")
        self.session_factory = session_factory
        self.tz = tz

    async def add_food(self, user_id: str, **fields) -> CaloriesIntakeLog:
        async with self.session_factory() as session:
            entry = CaloriesIntakeLog(user_id=user_id, **fields)
            session.add(entry)
            await session.commit()
            log.info("food_logged", user_id=user_id, entry_id=entry.id, food_item=entry.food_item)
            return entry

    async def update_food(self, user_id: str, entry_id: str, **fields) -> CaloriesIntakeLog | None:
        """Apply ``fields`` to the user's entry. None when no such entry."""
        async with self.session_factory() as session:
            entry = await session.get(CaloriesIntakeLog, entry_id)
            if entry is None or entry.user_id != user_id:
                return None
            for key, value in fields.items():
                setattr(entry, key, value)
            await session.commit()
            log.info("food_updated", user_id=user_id, entry_id=entry_id, fields=sorted(fields))
            return entry

    async def delete_food(self, user_id: str, entry_id: str) -> bool:
        async with self.session_factory() as session:
            entry = await session.get(CaloriesIntakeLog, entry_id)
            if entry is None or entry.user_id != user_id:
                return False
            await session.delete(entry)
            await session.commit()
            log.info("food_deleted", user_id=user_id, entry_id=entry_id)
            return True

    async def get_water(self, user_id: str, entry_id: str) -> WaterIntakeLog | None:
        async with self.session_factory() as session:
            entry = await session.get(WaterIntakeLog, entry_id)
            if entry is None or entry.user_id != user_id:
                return None
            return entry

    async def upsert_water(self, user_id: str, entry_id: str | None = None, **fields) -> tuple[WaterIntakeLog, bool]:
        """Update the user's entry with ``entry_id`` in place, otherwise create
        one (reusing ``entry_id`` when given). Returns (entry, created)."""
        async with self.session_factory() as session:
            entry = await session.get(WaterIntakeLog, entry_id) if entry_id else None
            if entry is not None and entry.user_id != user_id:
                raise PermissionError(f"Water entry {entry_id} belongs to another user")
            created = entry is None
            if created:
                entry = WaterIntakeLog(user_id=user_id)
                if entry_id:
                    entry.id = entry_id
                session.add(entry)
            for key, value in fields.items():
                setattr(entry, key, value)
            await session.commit()
            log.info("water_logged", user_id=user_id, entry_id=entry.id, created=created)
            return entry, created

    async def food_for_day(self, user_id: str, day: date) -> list[CaloriesIntakeLog]:
        start, end = day_bounds(day, self.tz)
        async with self.session_factory() as session:
            result = await session.execute(
                select(CaloriesIntakeLog)
                .where(
                    CaloriesIntakeLog.user_id == user_id,
                    CaloriesIntakeLog.consumed_at >= start,
                    CaloriesIntakeLog.consumed_at < end,
                )
                .order_by(CaloriesIntakeLog.consumed_at.asc())
            )
            return list(result.scalars().all())

    async def water_for_day(self, user_id: str, day: date) -> list[WaterIntakeLog]:
        start, end = day_bounds(day, self.tz)
        async with self.session_factory() as session:
            result = await session.execute(
                select(WaterIntakeLog)
                .where(
                    WaterIntakeLog.user_id == user_id,
                    WaterIntakeLog.consumed_at >= start,
                    WaterIntakeLog.consumed_at < end,
                )
                .order_by(WaterIntakeLog.consumed_at.asc())
            )
            return list(result.scalars().all())

    async def food_summary(self, user_id: str, day: date) -> dict:
        """Totals only add reported values. An entry without calories is
        counted in ``unknown_calories`` instead of contributing zero."""
        entries = await self.food_for_day(user_id, day)
        totals = {name: 0.0 for name in NUTRIENTS}
        unknown = {name: 0 for name in NUTRIENTS}
        for entry in entries:
            for name in NUTRIENTS:
                value = getattr(entry, name)
                if value is None:
                    unknown[name] += 1
                else:
                    totals[name] += value
        return {
            "date": day.isoformat(),
            "items": entries,
            "total_calories": round(totals["calories"], 1),
            "total_proteins": round(totals["proteins"], 1),
            "total_carbs": round(totals["carbs"], 1),
            "total_fats": round(totals["fats"], 1),
            "unknown_calories": unknown["calories"],
            "unknown_nutrients": unknown,
        }

    async def water_summary(self, user_id: str, day: date, unit: str = "ml") -> dict:
        entries = await self.water_for_day(user_id, day)
        total = sum(convert_water(e.amount, e.unit, unit) for e in entries)
        return {
            "date": day.isoformat(),
            "items": entries,
            "total": round(total, 2),
            "unit": unit,
        }

    async def _page(self, model, user_id: str, limit: int, offset: int) -> tuple[list, int]:
        async with self.session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(model).where(model.user_id == user_id))
            result = await session.execute(
                select(model)
                .where(model.user_id == user_id)
                .order_by(model.consumed_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), total or 0

    async def food_history(self, user_id: str, limit: int = 100, offset: int = 0) -> dict:
        """Most recent first, with all-time totals that skip unknown values."""
        entries, total_count = await self._page(CaloriesIntakeLog, user_id, limit, offset)
        async with self.session_factory() as session:
            row = (await session.execute(
                select(*(func.sum(getattr(CaloriesIntakeLog, n)) for n in NUTRIENTS))
                .where(CaloriesIntakeLog.user_id == user_id)
            )).one()
        totals = {name: round(value or 0.0, 2) for name, value in zip(NUTRIENTS, row)}
        return {"items": entries, "total_count": total_count, "totals": totals}

    async def water_history(self, user_id: str, limit: int = 100, offset: int = 0) -> dict:
        entries, total_count = await self._page(WaterIntakeLog, user_id, limit, offset)
        async with self.session_factory() as session:
            result = await session.execute(
                select(WaterIntakeLog.unit, func.sum(WaterIntakeLog.amount))
                .where(WaterIntakeLog.user_id == user_id)
                .group_by(WaterIntakeLog.unit)
            )
            total_ml = sum(convert_water(amount, unit, "ml") for unit, amount in result.all())
        return {"items": entries, "total_count": total_count, "total_ml": total_ml}
