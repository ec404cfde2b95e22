import re
from datetime import datetime, timezone

HIVE_ID_RE = re.compile(r"^HIVE-\d{3,}$")
_DEVICE_HIVE_RE = re.compile(r"hive-(\d+)", re.IGNORECASE)


def is_valid_hive_id(value: object) -> bool:
    return isinstance(value, str) and bool(HIVE_ID_RE.match(value))


def build_hive_id(number: int) -> str:
    return f"HIVE-{number:03d}"


def hive_id_from_device_name(device_id: str | None) -> str | None:
    """Derive ``HIVE-NNN`` from names like ``beehive-hive-42``; None when no suffix."""
    if not device_id:
        return None
    match = _DEVICE_HIVE_RE.search(device_id)
    if not match:
        return None
    return build_hive_id(int(match.group(1)))


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse ISO-8601 text (trailing ``Z`` allowed) into an aware UTC datetime.

    Raises ValueError on malformed input; returns None for empty input.
    """
    if not value:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if normalized[-1] in {"z", "Z"}:
        normalized = normalized[:-1] + "+00:00"
    # TTN sends nanosecond precision; fromisoformat stops at microseconds
    normalized = re.sub(r"(\.\d{6})\d+", r"\1", normalized)
    return as_utc(datetime.fromisoformat(normalized))
