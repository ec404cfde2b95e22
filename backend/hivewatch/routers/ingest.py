import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..config import Settings
from ..deps import get_broadcaster, get_pipeline, get_settings, get_store
from ..errors import IngestError
from ..pipeline import InboundEnvelope, IngestionPipeline, IngestResult, TransportKind
from ..ratelimit import client_ip
from ..schemas import IngestAck
from ..store import HiveStore
from ..ws import Broadcaster
from .auth import API_KEY_HEADER, authorize_sensor_post

router = APIRouter(prefix="/ingest", tags=["ingest"])
logger = logging.getLogger(__name__)


def _http_error(exc: IngestError) -> HTTPException:
    detail: dict[str, Any] = {"error": exc.message}
    if exc.errors:
        detail["errors"] = exc.errors
    return HTTPException(status_code=exc.status_code, detail=detail)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail={"error": "Malformed JSON body"})
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail={"error": "Body must be a JSON object"})
    return body


def _peer(request: Request) -> str:
    return client_ip(request.headers, request.client.host if request.client else None)


async def _publish(broadcaster: Broadcaster, result: IngestResult) -> None:
    if result.reading is None:
        return
    try:
        await broadcaster.broadcast_json({"type": "reading", "reading": result.reading.as_dict()})
    except Exception:
        logger.exception("Failed to broadcast reading %s", result.reading.id)


@router.post("/lorawan", response_model=IngestAck, response_model_exclude_none=True)
async def ingest_lorawan(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_pipeline),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """TTN / ChirpStack uplink webhook.

    Unknown devices still get a 200 so the network server does not retry;
    the body says ``success: false``.
    """
    body = await _json_body(request)
    envelope = InboundEnvelope(kind=TransportKind.LORAWAN, payload=body, client_key=_peer(request))
    try:
        result = await pipeline.ingest(envelope)
    except IngestError as exc:
        raise _http_error(exc)
    except Exception as exc:
        logger.exception("LoRaWAN webhook failed")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})

    await _publish(broadcaster, result)
    return result.as_response()


async def _ingest_sensor(
    kind: TransportKind,
    request: Request,
    pipeline: IngestionPipeline,
    store: HiveStore,
    settings: Settings,
    broadcaster: Broadcaster,
) -> dict[str, Any]:
    body = await _json_body(request)
    try:
        hive = await authorize_sensor_post(request, body, store, settings)
        envelope = InboundEnvelope(kind=kind, payload=body, client_key=_peer(request), authorized_hive=hive)
        result = await pipeline.ingest(envelope)
    except IngestError as exc:
        raise _http_error(exc)

    await _publish(broadcaster, result)
    return result.as_response()


@router.post("/sensor", status_code=status.HTTP_201_CREATED, response_model=IngestAck, response_model_exclude_none=True)
async def ingest_sensor(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_pipeline),
    store: HiveStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    # Devices authenticate with a key and report over WiFi; browsers post manual readings
    kind = TransportKind.WIFI if request.headers.get(API_KEY_HEADER) else TransportKind.DIRECT
    return await _ingest_sensor(kind, request, pipeline, store, settings, broadcaster)


@router.post("/esp32", status_code=status.HTTP_201_CREATED, response_model=IngestAck, response_model_exclude_none=True)
async def ingest_esp32(
    request: Request,
    pipeline: IngestionPipeline = Depends(get_pipeline),
    store: HiveStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    if not request.headers.get(API_KEY_HEADER):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")
    return await _ingest_sensor(TransportKind.WIFI, request, pipeline, store, settings, broadcaster)
