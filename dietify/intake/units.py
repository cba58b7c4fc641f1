"""Parsing and unit helpers for intake logging."""

import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

ML_PER_OZ = 29.5735
ML_PER_CUP = 250
ML_PER_LITER = 1000

_QUANTITY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(.*?)\s*$")

_ML_ALIASES = {"ml", "milliliter", "milliliters", "millilitre", "millilitres"}
_OZ_ALIASES = {"oz", "fl oz", "fl. oz", "fl.oz", "fluid ounce", "fluid ounces", "ounce", "ounces"}
_CUP_ALIASES = {"cup", "cups"}
_LITER_ALIASES = {"l", "liter", "liters", "litre", "litres"}


def parse_quantity(quantity: str) -> tuple[float | None, str]:
    """Split "150g" into (150, "g"). Without a leading number the whole
    input is the unit: "apple" -> (None, "apple")."""
    match = _QUANTITY_RE.match(quantity or "")
    if not match:
        return None, (quantity or "").strip()
    return float(match.group(1)), match.group(2)


def infer_meal_type(consumed_at: datetime, tz: str | None = None) -> str:
    """Meal slot from the local hour. Naive datetimes are taken as local."""
    if tz and consumed_at.tzinfo is not None:
        consumed_at = consumed_at.astimezone(ZoneInfo(tz))
    hour = consumed_at.hour
    if 5 <= hour < 11:
        return "breakfast"
    if 11 <= hour < 16:
        return "lunch"
    if 16 <= hour < 22:
        return "dinner"
    return "snack"


def parse_timestamp(value: str | None, tz: str) -> datetime:
    """ISO string to an aware UTC datetime; defaults to now."""
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(tz))
    return parsed.astimezone(timezone.utc)


def normalize_water(amount: float, unit: str) -> tuple[float, str]:
    """Reduce any supported unit to ml or oz. Cups and liters become ml,
    unknown units are treated as ml."""
    key = (unit or "").strip().lower()
    if key in _OZ_ALIASES:
        return amount, "oz"
    if key in _CUP_ALIASES:
        return amount * ML_PER_CUP, "ml"
    if key in _LITER_ALIASES:
        return amount * ML_PER_LITER, "ml"
    return amount, "ml"


def convert_water(amount: float, from_unit: str, to_unit: str) -> float:
    """Convert between ml and oz. ml rounds to a whole number, oz to two
    decimals."""
    if from_unit == to_unit:
        value = amount
    elif from_unit == "oz" and to_unit == "ml":
        value = amount * ML_PER_OZ
    elif from_unit == "ml" and to_unit == "oz":
        value = amount / ML_PER_OZ
    else:
        raise ValueError(f"Unsupported water conversion {from_unit} -> {to_unit}")
    return round(value) if to_unit == "ml" else round(value, 2)


def to_storage_unit(amount: float, unit: str, storage_unit: str = "ml") -> tuple[float, str]:
    value, normalized = normalize_water(amount, unit)
    return convert_water(value, normalized, storage_unit), storage_unit
