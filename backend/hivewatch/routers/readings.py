from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from datetime import datetime, timedelta, timezone
from typing import Iterable
import csv
from io import StringIO
import json

from ..deps import get_store, rate_limited
from ..errors import StoreError
from ..schemas import LatestOut, ReadingOut
from ..store import HiveStore, ReadingRecord
from ..utils import parse_iso_datetime

RANGES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


def _parse_bound(value: str | None, field_name: str) -> datetime | None:
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}. Use ISO-8601 format.") from exc


def _store_failure(exc: StoreError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


router = APIRouter(prefix="/api/readings", tags=["readings"])
# HTTP reads only; the live socket is not limited
API_LIMIT = Depends(rate_limited("api"))


@router.get("/latest", response_model=LatestOut, dependencies=[API_LIMIT])
async def latest_reading(hiveId: str = Query(...), store: HiveStore = Depends(get_store)):
    try:
        latest = await store.latest_reading(hiveId)
    except StoreError as exc:
        raise _store_failure(exc)
    if latest is None:
        return LatestOut()
    return LatestOut(
        temperature=latest.temperature,
        humidity=latest.humidity,
        weight=latest.weight,
        battery=latest.battery_level,
        lastUpdate=latest.timestamp.isoformat(),
    )


@router.get("/history", response_model=list[ReadingOut], dependencies=[API_LIMIT])
async def reading_history(
    hiveId: str = Query(...),
    range: str = Query("24h"),
    start_ts: str | None = None,
    end_ts: str | None = None,
    limit: int = Query(2000, gt=0, le=10000),
    store: HiveStore = Depends(get_store),
):
    start_dt = _parse_bound(start_ts, "start_ts")
    end_dt = _parse_bound(end_ts, "end_ts")
    if start_dt is None:
        # unknown ranges fall back to the last day
        start_dt = datetime.now(timezone.utc) - RANGES.get(range, RANGES["24h"])
    try:
        rows = await store.readings_range(hiveId, start=start_dt, end=end_dt, limit=limit)
    except StoreError as exc:
        raise _store_failure(exc)
    return [ReadingOut(**r.as_dict()) for r in rows]


@router.get("/stats", dependencies=[API_LIMIT])
async def reading_stats(hiveId: str = Query(...), store: HiveStore = Depends(get_store)):
    since = datetime.now(timezone.utc) - RANGES["24h"]
    try:
        stats = await store.reading_stats(hiveId, since=since)
    except StoreError as exc:
        raise _store_failure(exc)
    return {"hiveId": hiveId, **stats}


def _render_csv(rows: Iterable[ReadingRecord]) -> str:
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "hive_id", "timestamp", "temperature", "humidity", "weight", "battery", "source", "metadata"])
    for r in rows:
        writer.writerow(
            [
                r.id,
                r.hive_id,
                r.timestamp.isoformat(),
                r.temperature,
                r.humidity,
                r.weight,
                r.battery_level,
                r.source,
                "" if not r.metadata else json.dumps(r.metadata, ensure_ascii=False),
            ]
        )
    buffer.seek(0)
    return buffer.getvalue()


@router.get("/export", dependencies=[API_LIMIT])
async def export_readings(
    hiveId: str,
    start_ts: str | None = None,
    end_ts: str | None = None,
    limit: int = Query(500, gt=0, le=10000),
    store: HiveStore = Depends(get_store),
):
    start_dt = _parse_bound(start_ts, "start_ts")
    end_dt = _parse_bound(end_ts, "end_ts")

    try:
        rows = await store.readings_range(hiveId, start=start_dt, end=end_dt, limit=limit)
    except StoreError as exc:
        raise _store_failure(exc)

    csv_content = _render_csv(rows)
    filename = f"{hiveId}_readings.csv"
    response = StreamingResponse(iter([csv_content]), media_type="text/csv")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


@router.websocket("/live")
async def live_readings(ws: WebSocket):
    broadcaster = ws.app.state.broadcaster
    await broadcaster.connect(ws)
    try:
        while True:
            # clients only listen; drain anything they send
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(ws)
