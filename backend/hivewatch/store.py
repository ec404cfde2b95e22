"""Persistence operations used by the ingestion pipeline and the read endpoints."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, TypeVar

from sqlalchemy import desc, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .errors import DeviceConflict, StoreError, StoreTimeout
from .models import Device, Hive, Reading, User
from .utils import as_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class HiveRecord:
    hive_id: str
    owner_user_id: int
    name: str
    device_type: str | None = None
    dev_eui: str | None = None
    api_key: str | None = None
    last_seen: datetime | None = None
    signal_strength: float | None = None
    battery_level: int | None = None


@dataclass(frozen=True)
class ReadingRecord:
    hive_id: str
    temperature: float
    humidity: float
    weight: float
    battery_level: int
    timestamp: datetime
    source: str = "WiFi"
    signal_strength: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hiveId": self.hive_id,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "weight": self.weight,
            "battery": self.battery_level,
            "signalStrength": self.signal_strength,
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class DeviceStats:
    device_id: str
    hive_id: str
    last_seen: datetime
    total_messages: int
    avg_rssi: float | None
    avg_snr: float | None
    min_battery: int | None
    latest_battery: int | None


def _hive_record(hive: Hive) -> HiveRecord:
    device = hive.device
    return HiveRecord(
        hive_id=hive.id,
        owner_user_id=hive.owner_id,
        name=hive.name,
        device_type=device.type if device else None,
        dev_eui=device.dev_eui if device else None,
        api_key=device.api_key if device else None,
        last_seen=as_utc(device.last_seen) if device and device.last_seen else None,
        signal_strength=device.signal_strength if device else None,
        battery_level=device.battery_level if device else None,
    )


def _reading_record(row: Reading) -> ReadingRecord:
    return ReadingRecord(
        id=row.id,
        hive_id=row.hive_id,
        temperature=row.temperature,
        humidity=row.humidity,
        weight=row.weight,
        battery_level=row.battery_level,
        timestamp=as_utc(row.ts),
        source=row.source,
        signal_strength=row.signal_strength,
        metadata=row.meta or {},
    )


class HiveStore:
    """Async SQLAlchemy implementation of the hive/reading store.

    Every call is bounded by ``timeout`` seconds; a timeout raises
    :class:`StoreTimeout` and any driver failure raises :class:`StoreError`.
    """

    def __init__(self, session: AsyncSession, timeout: float = 5.0):
        self.session = session
        self.timeout = timeout

    async def _bounded(self, aw: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store operation '%s' timed out after %.1fs", what, self.timeout)
            raise StoreTimeout(f"Store timed out during {what}") from exc
        except SQLAlchemyError as exc:
            logger.exception("Store operation '%s' failed", what)
            raise StoreError(f"Store failed during {what}") from exc

    async def _one_hive(self, stmt) -> HiveRecord | None:
        res = await self.session.execute(stmt.options(selectinload(Hive.device)))
        hive = res.scalars().first()
        return _hive_record(hive) if hive else None

    # Device -> hive mapping

    async def find_hive(self, hive_id: str) -> HiveRecord | None:
        stmt = select(Hive).where(Hive.id == hive_id)
        return await self._bounded(self._one_hive(stmt), "find_hive")

    async def find_hive_by_dev_eui(self, dev_eui: str) -> HiveRecord | None:
        stmt = select(Hive).join(Device).where(Device.dev_eui == dev_eui)
        return await self._bounded(self._one_hive(stmt), "find_hive_by_dev_eui")

    async def find_hive_by_api_key(self, api_key: str) -> HiveRecord | None:
        stmt = select(Hive).join(Device).where(Device.type == "api", Device.api_key == api_key)
        return await self._bounded(self._one_hive(stmt), "find_hive_by_api_key")

    async def _owner_email(self, hive_id: str) -> str | None:
        stmt = select(User.email).join(Hive, Hive.owner_id == User.id).where(Hive.id == hive_id)
        return (await self.session.execute(stmt)).scalars().first()

    async def owner_email(self, hive_id: str) -> str | None:
        return await self._bounded(self._owner_email(hive_id), "owner_email")

    # Writes

    async def _insert(self, reading: ReadingRecord) -> ReadingRecord:
        row = Reading(
            hive_id=reading.hive_id,
            ts=reading.timestamp,
            temperature=reading.temperature,
            humidity=reading.humidity,
            weight=reading.weight,
            battery_level=reading.battery_level,
            signal_strength=reading.signal_strength,
            source=reading.source,
            meta=reading.metadata,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return _reading_record(row)

    async def insert_reading(self, reading: ReadingRecord) -> ReadingRecord:
        return await self._bounded(self._insert(reading), "insert_reading")

    async def _touch(self, hive_id: str, last_seen: datetime, signal_strength: float | None, battery_level: int | None) -> bool:
        res = await self.session.execute(select(Device).where(Device.hive_id == hive_id))
        device = res.scalars().first()
        if device is None:
            return False
        device.last_seen = last_seen
        if signal_strength is not None:
            device.signal_strength = signal_strength
        if battery_level is not None:
            device.battery_level = battery_level
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return True

    async def update_device_liveness(
        self,
        hive_id: str,
        *,
        last_seen: datetime,
        signal_strength: float | None = None,
        battery_level: int | None = None,
    ) -> bool:
        return await self._bounded(
            self._touch(hive_id, last_seen, signal_strength, battery_level), "update_device_liveness"
        )

    async def _assign(self, hive_id: str, device_type: str, dev_eui: str | None, api_key: str | None) -> HiveRecord | None:
        res = await self.session.execute(select(Hive).options(selectinload(Hive.device)).where(Hive.id == hive_id))
        hive = res.scalars().first()
        if hive is None:
            return None
        if dev_eui:
            holder = await self.session.execute(
                select(Device.hive_id).where(Device.dev_eui == dev_eui, Device.hive_id != hive_id)
            )
            other = holder.scalars().first()
            if other:
                raise DeviceConflict(dev_eui, other)
        if hive.device is None:
            hive.device = Device(hive_id=hive_id)
        hive.device.type = device_type
        hive.device.dev_eui = dev_eui
        hive.device.api_key = api_key if device_type == "api" else None
        try:
            await self.session.commit()
        except IntegrityError as exc:
            # lost a race with a concurrent assignment of the same devEUI
            await self.session.rollback()
            raise DeviceConflict(dev_eui or "", "another hive") from exc
        return _hive_record(hive)

    async def assign_device(
        self, hive_id: str, *, device_type: str, dev_eui: str | None = None, api_key: str | None = None
    ) -> HiveRecord | None:
        return await self._bounded(self._assign(hive_id, device_type, dev_eui, api_key), "assign_device")

    # Reads

    async def _latest(self, hive_id: str, at_or_before: datetime | None) -> ReadingRecord | None:
        stmt = select(Reading).where(Reading.hive_id == hive_id)
        if at_or_before is not None:
            stmt = stmt.where(Reading.ts <= at_or_before)
        stmt = stmt.order_by(desc(Reading.ts), desc(Reading.id)).limit(1)
        row = (await self.session.execute(stmt)).scalars().first()
        return _reading_record(row) if row else None

    async def latest_reading(self, hive_id: str, *, at_or_before: datetime | None = None) -> ReadingRecord | None:
        return await self._bounded(self._latest(hive_id, at_or_before), "latest_reading")

    async def _range(self, hive_id: str, start: datetime | None, end: datetime | None, limit: int) -> list[ReadingRecord]:
        stmt = select(Reading).where(Reading.hive_id == hive_id)
        if start:
            stmt = stmt.where(Reading.ts >= start)
        if end:
            stmt = stmt.where(Reading.ts <= end)
        stmt = stmt.order_by(desc(Reading.ts)).limit(limit)
        rows = (await self.session.execute(stmt)).scalars().all()
        # Return ascending order to make visualisation easier to read
        return [_reading_record(r) for r in rows[::-1]]

    async def readings_range(
        self, hive_id: str, *, start: datetime | None = None, end: datetime | None = None, limit: int = 500
    ) -> list[ReadingRecord]:
        return await self._bounded(self._range(hive_id, start, end, limit), "readings_range")

    async def _stats(self, hive_id: str, since: datetime) -> dict[str, Any]:
        stmt = select(
            func.avg(Reading.temperature),
            func.min(Reading.temperature),
            func.max(Reading.temperature),
            func.avg(Reading.humidity),
            func.avg(Reading.weight),
            func.count(Reading.id),
        ).where(Reading.hive_id == hive_id, Reading.ts >= since)
        avg_t, min_t, max_t, avg_h, avg_w, count = (await self.session.execute(stmt)).one()
        return {
            "avgTemp": avg_t,
            "minTemp": min_t,
            "maxTemp": max_t,
            "avgHumidity": avg_h,
            "avgWeight": avg_w,
            "count": int(count or 0),
        }

    async def reading_stats(self, hive_id: str, *, since: datetime) -> dict[str, Any]:
        return await self._bounded(self._stats(hive_id, since), "reading_stats")

    def _device_key(self):
        # readings are grouped per radio: network device name, then devEUI, then hive
        return func.coalesce(
            Reading.meta["deviceId"].as_string(),
            Reading.meta["devEUI"].as_string(),
            Reading.hive_id,
        )

    async def _device_stats(self) -> list[DeviceStats]:
        key = self._device_key()
        device_id = key.label("device_id")
        lorawan = Reading.source == "LoRaWAN"
        totals = (
            select(
                device_id,
                func.count(Reading.id),
                func.max(Reading.ts),
                func.avg(Reading.signal_strength),
                func.avg(Reading.meta["snr"].as_float()),
                func.min(Reading.battery_level),
            )
            .where(lorawan)
            .group_by(device_id)
            .order_by(desc(func.max(Reading.ts)))
        )
        ranked = (
            select(
                key.label("device_id"),
                Reading.hive_id,
                Reading.battery_level,
                func.row_number()
                .over(partition_by=key, order_by=(Reading.ts.desc(), Reading.id.desc()))
                .label("rn"),
            )
            .where(lorawan)
            .subquery()
        )
        latest_rows = await self.session.execute(
            select(ranked.c.device_id, ranked.c.hive_id, ranked.c.battery_level).where(ranked.c.rn == 1)
        )
        latest = {key_value: (hive_id, battery) for key_value, hive_id, battery in latest_rows}

        stats = []
        for key_value, count, last_ts, avg_rssi, avg_snr, min_battery in await self.session.execute(totals):
            hive_id, latest_battery = latest[key_value]
            stats.append(
                DeviceStats(
                    device_id=str(key_value),
                    hive_id=hive_id,
                    last_seen=as_utc(last_ts),
                    total_messages=int(count),
                    avg_rssi=avg_rssi,
                    avg_snr=avg_snr,
                    min_battery=min_battery,
                    latest_battery=latest_battery,
                )
            )
        return stats

    async def lorawan_device_stats(self) -> list[DeviceStats]:
        """Per-device LoRaWAN message statistics, most recently heard first."""
        return await self._bounded(self._device_stats(), "lorawan_device_stats")
