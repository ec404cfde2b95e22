
from fastapi import APIRouter, Depends, HTTPException, Path, Request, status

from ..deps import get_store, rate_limited
from ..errors import DeviceConflict, StoreError
from ..resolver import normalize_dev_eui
from ..schemas import DeviceAssignIn, DeviceOut, LoRaWANDevicesOut, LoRaWANDeviceStats
from ..store import DeviceStats, HiveRecord, HiveStore
from .auth import require_hive_owner

router = APIRouter(prefix="/api", tags=["devices"], dependencies=[Depends(rate_limited("api"))])


def to_device_out(hive: HiveRecord) -> DeviceOut:
    return DeviceOut(
        hiveId=hive.hive_id,
        type=hive.device_type,
        devEUI=hive.dev_eui,
        lastSeen=hive.last_seen.isoformat() if hive.last_seen else None,
        signalStrength=hive.signal_strength,
        batteryLevel=hive.battery_level,
    )


def _rounded(value: float | None) -> float | None:
    return round(float(value), 2) if value is not None else None


def to_stats_out(stats: DeviceStats) -> LoRaWANDeviceStats:
    return LoRaWANDeviceStats(
        deviceId=stats.device_id,
        hiveId=stats.hive_id,
        lastSeen=stats.last_seen.isoformat(),
        totalMessages=stats.total_messages,
        avgRssi=_rounded(stats.avg_rssi),
        avgSnr=_rounded(stats.avg_snr),
        minBattery=stats.min_battery,
        latestBattery=stats.latest_battery,
    )


@router.get("/lorawan/devices", response_model=LoRaWANDevicesOut)
async def lorawan_devices(store: HiveStore = Depends(get_store)):
    try:
        stats = await store.lorawan_device_stats()
    except StoreError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    devices = [to_stats_out(s) for s in stats]
    return LoRaWANDevicesOut(count=len(devices), devices=devices)


@router.put("/hives/{hive_id}/device", response_model=DeviceOut)
async def assign_device(
    request: Request,
    payload: DeviceAssignIn,
    hive_id: str = Path(..., pattern=r"^HIVE-\d{3,}$"),
    store: HiveStore = Depends(get_store),
):
    dev_eui = None
    if payload.devEUI:
        dev_eui = normalize_dev_eui(payload.devEUI)
        if dev_eui is None:
            raise HTTPException(status_code=422, detail="devEUI must be 16 hexadecimal characters")
    if payload.type == "api" and not payload.apiKey:
        raise HTTPException(status_code=422, detail="apiKey is required for api devices")

    try:
        await require_hive_owner(request, hive_id, store)
        hive = await store.assign_device(
            hive_id, device_type=payload.type, dev_eui=dev_eui, api_key=payload.apiKey
        )
    except DeviceConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    if hive is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hive not found")
    return to_device_out(hive)
