"""Range checks and coercion for raw sensor readings from any transport."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from .utils import is_valid_hive_id

logger = logging.getLogger(__name__)

DEFAULT_HIVE_ID = "HIVE-001"
DEFAULT_BATTERY = 100
WEIGHT_MAX_KG = 500.0


@dataclass(frozen=True)
class FieldRule:
    name: str
    lo: float
    hi: float
    unit: str


RULES = (
    FieldRule("temperature", -50.0, 100.0, "°C"),
    FieldRule("humidity", 0.0, 100.0, "%"),
    FieldRule("weight", 0.0, WEIGHT_MAX_KG, "kg"),
)


@dataclass(frozen=True)
class NormalizedReading:
    hive_id: str
    temperature: float
    humidity: float
    weight: float
    battery: int


@dataclass
class ValidationResult:
    valid: bool
    data: NormalizedReading | None = None
    errors: list[str] = field(default_factory=list)


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def validate_reading(
    raw: Mapping[str, Any],
    *,
    default_hive_id: str = DEFAULT_HIVE_ID,
    weight_max: float = WEIGHT_MAX_KG,
) -> ValidationResult:
    """Validate and normalise one reading, collecting every violated rule."""

    errors: list[str] = []
    values: dict[str, float] = {}

    for rule in RULES:
        hi = weight_max if rule.name == "weight" else rule.hi
        if raw.get(rule.name) is None:
            errors.append(f"{rule.name} is required")
            continue
        number = _as_number(raw[rule.name])
        if number is None:
            errors.append(f"{rule.name} must be a number")
            continue
        if number < rule.lo or number > hi:
            errors.append(f"{rule.name} must be between {rule.lo:g} and {hi:g} {rule.unit}")
            continue
        values[rule.name] = number

    battery = DEFAULT_BATTERY
    if raw.get("battery") is not None:
        number = _as_number(raw["battery"])
        if number is None:
            errors.append("battery must be a number")
        else:
            battery = int(round(min(100.0, max(0.0, number))))

    if errors:
        return ValidationResult(valid=False, errors=errors)

    hive_id = raw.get("hiveId")
    if hive_id is not None and not is_valid_hive_id(hive_id):
        logger.debug("Replacing malformed hiveId %r with %s", hive_id, default_hive_id)
        hive_id = default_hive_id

    return ValidationResult(
        valid=True,
        data=NormalizedReading(
            hive_id=hive_id or default_hive_id,
            temperature=values["temperature"],
            humidity=values["humidity"],
            weight=values["weight"],
            battery=battery,
        ),
    )
