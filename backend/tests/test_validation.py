import pytest

from hivewatch.validation import validate_reading


def test_accepts_correct_reading():
    result = validate_reading({"temperature": 35.5, "humidity": 60, "weight": 45.2, "battery": 85})

    assert result.valid is True
    assert result.errors == []
    assert result.data.temperature == 35.5
    assert result.data.humidity == 60
    assert result.data.weight == 45.2
    assert result.data.battery == 85


def test_battery_defaults_to_full():
    result = validate_reading({"temperature": 35, "humidity": 60, "weight": 45})

    assert result.valid is True
    assert result.data.battery == 100


@pytest.mark.parametrize("raw_battery, expected", [(150, 100), (-5, 0), (99.6, 100), ("42", 42)])
def test_battery_is_clamped_not_rejected(raw_battery, expected):
    result = validate_reading({"temperature": 35, "humidity": 60, "weight": 45, "battery": raw_battery})

    assert result.valid is True
    assert result.data.battery == expected


def test_reports_every_missing_field_at_once():
    result = validate_reading({"temperature": 35})

    assert result.valid is False
    assert result.data is None
    assert result.errors == ["humidity is required", "weight is required"]


def test_reports_range_and_type_errors_together():
    result = validate_reading({"temperature": -100, "humidity": "wet", "weight": 600})

    assert result.valid is False
    assert len(result.errors) == 3
    assert result.errors[0].startswith("temperature must be between -50 and 100")
    assert result.errors[1] == "humidity must be a number"
    assert result.errors[2].startswith("weight must be between 0 and 500")


@pytest.mark.parametrize("bad", [True, float("nan"), float("inf"), [1], {}])
def test_rejects_non_numeric_values(bad):
    result = validate_reading({"temperature": bad, "humidity": 50, "weight": 40})

    assert result.valid is False
    assert result.errors == ["temperature must be a number"]


def test_bounds_are_inclusive():
    assert validate_reading({"temperature": -50, "humidity": 0, "weight": 0}).valid
    assert validate_reading({"temperature": 100, "humidity": 100, "weight": 500}).valid


def test_numeric_strings_are_coerced():
    result = validate_reading({"temperature": "35.2", "humidity": " 58.5", "weight": "42.75"})

    assert result.valid is True
    assert result.data.temperature == 35.2


def test_weight_ceiling_is_configurable():
    raw = {"temperature": 30, "humidity": 50, "weight": 750}

    assert validate_reading(raw).valid is False
    assert validate_reading(raw, weight_max=1000).valid is True


def test_malformed_hive_id_falls_back_to_default():
    result = validate_reading({"temperature": 30, "humidity": 50, "weight": 40, "hiveId": "hive-7"})

    assert result.valid is True
    assert result.data.hive_id == "HIVE-001"


def test_well_formed_hive_id_is_kept():
    result = validate_reading(
        {"temperature": 30, "humidity": 50, "weight": 40, "hiveId": "HIVE-1234"},
        default_hive_id="HIVE-009",
    )

    assert result.data.hive_id == "HIVE-1234"
    missing = validate_reading({"temperature": 30, "humidity": 50, "weight": 40}, default_hive_id="HIVE-009")
    assert missing.data.hive_id == "HIVE-009"
