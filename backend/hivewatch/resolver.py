"""Map inbound device identifiers to a registered hive and its owner."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from .store import HiveRecord
from .utils import hive_id_from_device_name

logger = logging.getLogger(__name__)

DEV_EUI_RE = re.compile(r"^[0-9A-F]{16}$")


class HiveLookup(Protocol):
    async def find_hive(self, hive_id: str) -> HiveRecord | None: ...

    async def find_hive_by_dev_eui(self, dev_eui: str) -> HiveRecord | None: ...


@dataclass(frozen=True)
class ResolvedHive:
    hive_id: str
    owner_user_id: int
    hive_name: str
    matched_by: str  # "devEUI" or "device_id"


def normalize_dev_eui(value: object) -> str | None:
    """Uppercase a 16-hex-char devEUI; None when absent or malformed."""
    if not isinstance(value, str):
        return None
    candidate = value.strip().upper()
    return candidate if DEV_EUI_RE.match(candidate) else None


def _resolved(hive: HiveRecord, matched_by: str) -> ResolvedHive:
    return ResolvedHive(
        hive_id=hive.hive_id,
        owner_user_id=hive.owner_user_id,
        hive_name=hive.name,
        matched_by=matched_by,
    )


async def resolve_device(
    lookup: HiveLookup,
    *,
    dev_eui: str | None = None,
    device_id: str | None = None,
) -> ResolvedHive | None:
    """Return the hive for a devEUI, else for a ``...hive-NNN`` device name.

    Neither path invents a hive: the device-name path only canonicalises the
    name and still requires the derived hive to exist.
    """
    normalized = normalize_dev_eui(dev_eui)
    if dev_eui and normalized is None:
        logger.warning("Ignoring malformed devEUI %r", dev_eui)

    if normalized:
        hive = await lookup.find_hive_by_dev_eui(normalized)
        if hive is not None:
            return _resolved(hive, "devEUI")
        # a devEUI is authoritative; do not fall back to the name
        return None

    derived = hive_id_from_device_name(device_id)
    if derived is None:
        return None
    hive = await lookup.find_hive(derived)
    if hive is None:
        logger.info("Device name %r maps to %s, which is not registered", device_id, derived)
        return None
    return _resolved(hive, "device_id")
