from datetime import date, datetime, timezone

import pytest

from dietify.intake.store import day_bounds
from dietify.intake.units import (
    convert_water, infer_meal_type, normalize_water, parse_quantity,
    parse_timestamp, to_storage_unit,
)


class TestParseQuantity:
    def test_number_with_unit_suffix(self):
        assert parse_quantity("150g") == (150.0, "g")

    def test_number_then_word(self):
        assert parse_quantity("1 cup") == (1.0, "cup")

    def test_decimal(self):
        assert parse_quantity("2.5 slices") == (2.5, "slices")

    def test_no_leading_number(self):
        assert parse_quantity("apple") == (None, "apple")

    def test_bare_number(self):
        assert parse_quantity("3") == (3.0, "")


class TestMealType:
    @pytest.mark.parametrize("hour,expected", [
        (7, "breakfast"),
        (13, "lunch"),
        (19, "dinner"),
        (2, "snack"),
        (5, "breakfast"),
        (10, "breakfast"),
        (11, "lunch"),
        (16, "dinner"),
        (22, "snack"),
    ])
    def test_local_hour(self, hour, expected):
        assert infer_meal_type(datetime(2025, 6, 1, hour, 30)) == expected

    def test_converts_aware_time_to_local(self):
        # 02:00 UTC is 07:30 in Kolkata
        consumed = datetime(2025, 6, 1, 2, 0, tzinfo=timezone.utc)
        assert infer_meal_type(consumed, "Asia/Kolkata") == "breakfast"
        assert infer_meal_type(consumed, "UTC") == "snack"


class TestTimestamps:
    def test_naive_is_local(self):
        parsed = parse_timestamp("2025-06-01T07:30:00", "Asia/Kolkata")
        assert parsed == datetime(2025, 6, 1, 2, 0, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        parsed = parse_timestamp("2025-06-01T07:30:00Z", "Asia/Kolkata")
        assert parsed == datetime(2025, 6, 1, 7, 30, tzinfo=timezone.utc)

    def test_defaults_to_now(self):
        before = datetime.now(timezone.utc)
        parsed = parse_timestamp(None, "UTC")
        assert parsed >= before

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday-ish", "UTC")

    def test_day_bounds_in_local_zone(self):
        start, end = day_bounds(date(2025, 6, 1), "Asia/Kolkata")
        assert start == datetime(2025, 5, 31, 18, 30, tzinfo=timezone.utc)
        assert (end - start).total_seconds() == 86400


class TestWaterUnits:
    def test_cups_become_ml(self):
        assert normalize_water(2, "cups") == (500, "ml")

    def test_liters_become_ml(self):
        assert normalize_water(1.5, "liters") == (1500, "ml")
        assert normalize_water(1, "L") == (1000, "ml")

    @pytest.mark.parametrize("unit", ["oz", "fl oz", "fluid ounces", "Ounce"])
    def test_ounce_aliases(self, unit):
        assert normalize_water(8, unit) == (8, "oz")

    def test_unknown_unit_is_ml(self):
        assert normalize_water(300, "glass") == (300, "ml")

    def test_oz_to_ml_rounds_to_whole(self):
        assert convert_water(8, "oz", "ml") == 237

    def test_ml_to_oz_two_decimals(self):
        assert convert_water(236.588, "ml", "oz") == 8.0
        assert convert_water(100, "ml", "oz") == 3.38

    def test_unsupported_conversion(self):
        with pytest.raises(ValueError):
            convert_water(1, "ml", "gallon")

    def test_storage_unit(self):
        assert to_storage_unit(2, "cups") == (500, "ml")
        assert to_storage_unit(8, "oz") == (237, "ml")
        assert to_storage_unit(500, "ml", storage_unit="oz") == (16.91, "oz")
