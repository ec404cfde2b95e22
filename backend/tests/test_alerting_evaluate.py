from datetime import timedelta

from hivewatch.alerting import AlertThresholdConfig, evaluate
from hivewatch.store import ReadingRecord


def _reading(now, **overrides):
    values = dict(
        hive_id="HIVE-001",
        temperature=34.0,
        humidity=55.0,
        weight=45.0,
        battery_level=90,
        timestamp=now,
    )
    values.update(overrides)
    return ReadingRecord(**values)


def test_heat_low_battery_and_weight_gain(now):
    latest = _reading(now, temperature=38, humidity=55, battery_level=15, weight=46)
    previous = _reading(now - timedelta(hours=1), weight=43)

    alerts = evaluate(latest, previous, AlertThresholdConfig(), now)

    assert [a.tag for a in alerts] == ["temperature-high", "battery-low", "weight-change"]
    weight = alerts[-1]
    assert weight.direction == "increase"
    assert weight.delta == 3
    assert "nectar" in weight.body


def test_stale_reading_raises_only_offline(now):
    latest = _reading(now - timedelta(minutes=90))

    alerts = evaluate(latest, None, AlertThresholdConfig(), now)

    assert [a.tag for a in alerts] == ["offline"]
    assert "90 minutes" in alerts[0].body


def test_exactly_sixty_minutes_is_not_offline(now):
    latest = _reading(now - timedelta(minutes=60))

    assert evaluate(latest, None, AlertThresholdConfig(), now) == []


def test_low_bands(now):
    latest = _reading(now, temperature=12.5, humidity=35)

    alerts = evaluate(latest, None, AlertThresholdConfig(), now)

    assert [(a.tag, a.type) for a in alerts] == [("temperature-low", "temperature"), ("humidity-low", "humidity")]


def test_high_humidity(now):
    alerts = evaluate(_reading(now, humidity=82), None, AlertThresholdConfig(), now)

    assert [a.tag for a in alerts] == ["humidity-high"]


def test_weight_loss_is_a_decrease(now):
    latest = _reading(now, weight=40.0)
    previous = _reading(now - timedelta(hours=2), weight=44.5)

    [alert] = evaluate(latest, previous, AlertThresholdConfig(), now)

    assert alert.tag == "weight-change"
    assert alert.direction == "decrease"
    assert alert.delta == -4.5


def test_weight_change_at_ceiling_is_quiet(now):
    latest = _reading(now, weight=47.0)
    previous = _reading(now - timedelta(hours=1), weight=45.0)

    assert evaluate(latest, previous, AlertThresholdConfig(), now) == []


def test_checks_can_be_switched_off(now):
    latest = _reading(now - timedelta(hours=3), temperature=40, humidity=90, battery_level=5, weight=50)
    previous = _reading(now - timedelta(hours=4), weight=40)

    config = AlertThresholdConfig(offline=False, temperature=False, humidity=False, battery=False, weight=False)
    assert evaluate(latest, previous, config, now) == []
    assert evaluate(latest, previous, AlertThresholdConfig(enabled=False), now) == []


def test_custom_bands(now):
    config = AlertThresholdConfig(temp_min=20, temp_max=40, battery_min=10)

    assert evaluate(_reading(now, temperature=38, battery_level=15), None, config, now) == []


def test_alert_dict_omits_unused_fields(now):
    [alert] = evaluate(_reading(now, battery_level=3), None, AlertThresholdConfig(), now)

    assert alert.as_dict() == {
        "tag": "battery-low",
        "type": "battery",
        "title": "HIVE-001 - Low battery",
        "body": "Battery at 3%, charge or replace the device battery",
    }
