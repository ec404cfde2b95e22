"""Shared fixtures: in-memory fakes for the core and a SQLite-backed app."""
import dataclasses
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from hivewatch.errors import StoreError  # noqa: E402
from hivewatch.store import HiveRecord, ReadingRecord  # noqa: E402

DEV_EUI = "70B3D57ED005E2E1"
OTHER_DEV_EUI = "70B3D57ED005A4B3"


class FakeStore:
    """Dict-backed stand-in for HiveStore."""

    def __init__(self, hives=()):
        self.hives = {h.hive_id: h for h in hives}
        self.readings: list[ReadingRecord] = []
        self.liveness: dict[str, dict] = {}
        self.fail_liveness = False
        self.lookups: list[tuple[str, str]] = []

    async def find_hive(self, hive_id):
        self.lookups.append(("hive_id", hive_id))
        return self.hives.get(hive_id)

    async def find_hive_by_dev_eui(self, dev_eui):
        self.lookups.append(("devEUI", dev_eui))
        for hive in self.hives.values():
            if hive.dev_eui == dev_eui:
                return hive
        return None

    async def insert_reading(self, reading):
        stored = dataclasses.replace(reading, id=len(self.readings) + 1)
        self.readings.append(stored)
        return stored

    async def update_device_liveness(self, hive_id, *, last_seen, signal_strength=None, battery_level=None):
        if self.fail_liveness:
            raise StoreError("liveness write failed")
        self.liveness[hive_id] = {
            "last_seen": last_seen,
            "signal_strength": signal_strength,
            "battery_level": battery_level,
        }
        return True


@pytest.fixture
def hives():
    return [
        HiveRecord(hive_id="HIVE-001", owner_user_id=1, name="Garden hive", device_type="lorawan", dev_eui=DEV_EUI),
        HiveRecord(hive_id="HIVE-002", owner_user_id=1, name="Orchard hive", device_type="lorawan", dev_eui=OTHER_DEV_EUI),
        HiveRecord(hive_id="HIVE-042", owner_user_id=2, name="Meadow hive", device_type="manual"),
    ]


@pytest.fixture
def store(hives):
    return FakeStore(hives)


@pytest.fixture
def now():
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
