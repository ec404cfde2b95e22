"""Sensor-reading ingestion: one pipeline for direct, WiFi and LoRaWAN transports.

Every inbound request moves through

    Received -> Decoded -> Validated -> Resolved -> Persisted -> Acknowledged

with two early exits: ``Rejected`` (bad payload or reading, reported as a 4xx)
and ``Unresolved`` (unknown device, acknowledged to the transport without
persisting anything so network servers do not retry).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol

from . import codec
from .errors import RateLimited, ReadingRejected, TransportError
from .ratelimit import AllowAll, RateLimiter
from .resolver import ResolvedHive, resolve_device
from .store import HiveRecord, ReadingRecord
from .utils import parse_iso_datetime
from .validation import DEFAULT_HIVE_ID, WEIGHT_MAX_KG, validate_reading

logger = logging.getLogger(__name__)


class TransportKind(str, Enum):
    DIRECT = "direct"
    WIFI = "wifi"
    LORAWAN = "lorawan"


SOURCE_BY_KIND = {
    TransportKind.DIRECT: "Manual",
    TransportKind.WIFI: "WiFi",
    TransportKind.LORAWAN: "LoRaWAN",
}


class IngestState(str, Enum):
    RECEIVED = "received"
    DECODED = "decoded"
    VALIDATED = "validated"
    RESOLVED = "resolved"
    PERSISTED = "persisted"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    UNRESOLVED = "unresolved"


class IngestStore(Protocol):
    async def find_hive(self, hive_id: str) -> HiveRecord | None: ...

    async def find_hive_by_dev_eui(self, dev_eui: str) -> HiveRecord | None: ...

    async def insert_reading(self, reading: ReadingRecord) -> ReadingRecord: ...

    async def update_device_liveness(
        self,
        hive_id: str,
        *,
        last_seen: datetime,
        signal_strength: float | None = None,
        battery_level: int | None = None,
    ) -> bool: ...


@dataclass(frozen=True)
class InboundEnvelope:
    """A transport payload tagged with how it arrived.

    ``authorized_hive`` is set by the HTTP layer when authentication already
    pinned the hive (a device API key, or a session owner's hive).
    """

    kind: TransportKind
    payload: Mapping[str, Any]
    client_key: str = "unknown"
    authorized_hive: HiveRecord | None = None


@dataclass
class Uplink:
    fields: dict[str, Any]
    dev_eui: str | None
    device_id: str | None
    received_at: datetime | None
    metadata: dict[str, Any]


@dataclass
class IngestResult:
    state: IngestState
    history: list[IngestState] = field(default_factory=list)
    reading: ReadingRecord | None = None
    hive_id: str | None = None
    hive_name: str | None = None
    message: str = ""
    dev_eui: str | None = None

    @property
    def persisted(self) -> bool:
        return self.reading is not None

    def as_response(self) -> dict[str, Any]:
        reading = self.reading
        if reading is None:
            body: dict[str, Any] = {"success": False, "message": self.message}
            if self.dev_eui:
                body["devEUI"] = self.dev_eui
            return body
        return {
            "success": True,
            "message": self.message,
            "hiveId": self.hive_id,
            "hiveName": self.hive_name,
            "readingId": reading.id,
            "timestamp": reading.timestamp.isoformat(),
        }


def _first(items: Any) -> dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _section(body: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = body.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TransportError(f"Invalid payload format: {key} must be an object")
    return value


def _text(value: Any) -> str | None:
    # identifiers of any other JSON type are treated as absent
    return value if isinstance(value, str) and value else None


def _decode_frame(frm_payload: Any) -> dict[str, Any]:
    if not isinstance(frm_payload, str):
        raise TransportError("frm_payload must be a base64 string")
    try:
        return codec.decode(codec.decode_base64(frm_payload))
    except codec.PayloadError as exc:
        raise TransportError(str(exc)) from exc


def _parse_received_at(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        logger.warning("Ignoring malformed uplink timestamp %r", value)
        return None


def _parse_ttn(body: Mapping[str, Any]) -> Uplink:
    ids = _section(body, "end_device_ids")
    uplink = body.get("uplink_message")
    if not isinstance(uplink, dict):
        raise TransportError("Invalid payload format: uplink_message is required")

    rx = _first(uplink.get("rx_metadata"))
    decoded = uplink.get("decoded_payload")
    frm_payload = uplink.get("frm_payload")
    metadata: dict[str, Any] = {
        "network": "ttn",
        "devEUI": _text(ids.get("dev_eui")),
        "deviceId": _text(ids.get("device_id")),
        "rssi": rx.get("rssi"),
        "snr": rx.get("snr"),
        "gatewayId": _dig(rx, "gateway_ids", "gateway_id"),
        "spreadingFactor": _dig(uplink, "settings", "data_rate", "lora", "spreading_factor"),
        "frequency": _dig(uplink, "settings", "frequency"),
        "receivedAt": uplink.get("received_at"),
    }

    if isinstance(decoded, dict) and decoded:
        fields = dict(decoded)
        metadata["rawPayload"] = decoded
    elif frm_payload is not None:
        fields = _decode_frame(frm_payload)
        metadata["frmPayload"] = frm_payload
    else:
        raise TransportError("Invalid payload format: no decoded_payload or frm_payload")

    return Uplink(
        fields=fields,
        dev_eui=_text(ids.get("dev_eui")),
        device_id=_text(ids.get("device_id")),
        received_at=_parse_received_at(uplink.get("received_at")),
        metadata=metadata,
    )


def _parse_chirpstack(body: Mapping[str, Any]) -> Uplink:
    info = _section(body, "deviceInfo")
    rx = _first(body.get("rxInfo"))
    decoded = body.get("object")
    data = body.get("data")
    metadata: dict[str, Any] = {
        "network": "chirpstack",
        "devEUI": _text(info.get("devEui")),
        "deviceId": _text(info.get("deviceName")),
        "rssi": rx.get("rssi"),
        "snr": rx.get("snr"),
        "gatewayId": rx.get("gatewayId"),
        "spreadingFactor": _dig(body, "txInfo", "modulation", "lora", "spreadingFactor"),
        "frequency": _dig(body, "txInfo", "frequency"),
        "receivedAt": body.get("time"),
    }

    if isinstance(decoded, dict) and decoded:
        fields = dict(decoded)
        metadata["rawPayload"] = decoded
    elif data is not None:
        fields = _decode_frame(data)
        metadata["frmPayload"] = data
    else:
        raise TransportError("Invalid payload format: no object or data")

    return Uplink(
        fields=fields,
        dev_eui=_text(info.get("devEui")),
        device_id=_text(info.get("deviceName")),
        received_at=_parse_received_at(body.get("time")),
        metadata=metadata,
    )


def parse_uplink(body: Mapping[str, Any]) -> Uplink:
    """Normalise a TTN v3 or ChirpStack v4 uplink webhook body."""
    if not isinstance(body, Mapping):
        raise TransportError("Webhook body must be a JSON object")
    if "deviceInfo" in body:
        uplink = _parse_chirpstack(body)
    else:
        uplink = _parse_ttn(body)
    if not uplink.dev_eui and not uplink.device_id:
        raise TransportError("Missing devEUI and device_id")
    return uplink


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


class IngestionPipeline:
    """Runs one inbound envelope through decode, validation, resolution and persistence."""

    def __init__(
        self,
        store: IngestStore,
        *,
        rate_limiter: RateLimiter | None = None,
        default_hive_id: str = DEFAULT_HIVE_ID,
        weight_max: float = WEIGHT_MAX_KG,
    ):
        self.store = store
        self.rate_limiter = rate_limiter or AllowAll()
        self.default_hive_id = default_hive_id
        self.weight_max = weight_max

    async def ingest(self, envelope: InboundEnvelope, *, now: datetime | None = None) -> IngestResult:
        now = now or datetime.now(timezone.utc)
        result = IngestResult(state=IngestState.RECEIVED, history=[IngestState.RECEIVED])

        def advance(state: IngestState) -> None:
            result.state = state
            result.history.append(state)

        try:
            if envelope.kind is TransportKind.LORAWAN:
                uplink = parse_uplink(envelope.payload)
            else:
                uplink = self._direct_uplink(envelope)
            advance(IngestState.DECODED)

            checked = validate_reading(
                uplink.fields, default_hive_id=self.default_hive_id, weight_max=self.weight_max
            )
            if not checked.valid or checked.data is None:
                raise ReadingRejected("Invalid sensor reading", errors=checked.errors)
            normalized = checked.data
            advance(IngestState.VALIDATED)
        except (TransportError, ReadingRejected) as exc:
            advance(IngestState.REJECTED)
            logger.info("Rejected %s payload: %s %s", envelope.kind.value, exc.message, exc.errors)
            raise

        try:
            hive = await self._resolve(envelope, uplink, normalized.hive_id)
        except ReadingRejected:
            advance(IngestState.REJECTED)
            raise
        if hive is None:
            advance(IngestState.UNRESOLVED)
            result.dev_eui = uplink.dev_eui.strip().upper() if uplink.dev_eui else None
            result.message = "Device not registered"
            logger.warning(
                "Skipping %s reading from unregistered device devEUI=%s device_id=%s",
                envelope.kind.value,
                uplink.dev_eui,
                uplink.device_id,
            )
            return result
        result.hive_id = hive.hive_id
        result.hive_name = hive.hive_name
        advance(IngestState.RESOLVED)

        # network servers share one address; only raw device posts are limited
        if envelope.kind is not TransportKind.LORAWAN:
            decision = self.rate_limiter.check(envelope.client_key, "sensor")
            if not decision.allowed:
                raise RateLimited(f"Too many sensor posts; retry in {decision.retry_after:.0f}s")

        signal = _as_float(uplink.metadata.get("rssi"))
        reading = ReadingRecord(
            hive_id=hive.hive_id,
            temperature=normalized.temperature,
            humidity=normalized.humidity,
            weight=normalized.weight,
            battery_level=normalized.battery,
            timestamp=uplink.received_at or now,
            source=SOURCE_BY_KIND[envelope.kind],
            signal_strength=signal,
            metadata={k: v for k, v in uplink.metadata.items() if v is not None},
        )
        result.reading = await self.store.insert_reading(reading)
        advance(IngestState.PERSISTED)
        logger.info(
            "Saved %s reading for %s: T=%.1f°C H=%.1f%% W=%.2fkg B=%d%%",
            reading.source,
            hive.hive_id,
            reading.temperature,
            reading.humidity,
            reading.weight,
            reading.battery_level,
        )

        try:
            await self.store.update_device_liveness(
                hive.hive_id,
                last_seen=now,
                signal_strength=signal,
                battery_level=normalized.battery,
            )
        except Exception:
            logger.exception("Failed to update device liveness for %s", hive.hive_id)

        result.message = "Data received and saved"
        advance(IngestState.ACKNOWLEDGED)
        return result

    def _direct_uplink(self, envelope: InboundEnvelope) -> Uplink:
        body = envelope.payload
        if not isinstance(body, Mapping):
            raise TransportError("Sensor body must be a JSON object")
        metadata: dict[str, Any] = {"transport": envelope.kind.value}
        if body.get("rssi") is not None:
            metadata["rssi"] = body.get("rssi")
        if body.get("deviceId"):
            metadata["deviceId"] = body.get("deviceId")
        return Uplink(
            fields=dict(body),
            dev_eui=None,
            device_id=_text(body.get("deviceId")),
            received_at=None,
            metadata=metadata,
        )

    async def _resolve(self, envelope: InboundEnvelope, uplink: Uplink, hive_id: str) -> ResolvedHive | None:
        if envelope.authorized_hive is not None:
            hive = envelope.authorized_hive
            return ResolvedHive(hive.hive_id, hive.owner_user_id, hive.name, "auth")

        if envelope.kind is TransportKind.LORAWAN:
            return await resolve_device(self.store, dev_eui=uplink.dev_eui, device_id=uplink.device_id)

        record = await self.store.find_hive(hive_id)
        if record is None:
            raise ReadingRejected("Unknown hive", errors=[f"hiveId {hive_id} is not registered"])
        return ResolvedHive(record.hive_id, record.owner_user_id, record.name, "hiveId")
