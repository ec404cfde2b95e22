# codec.py
# Pack and unpack the 9-byte beehive uplink frame (network byte order).

from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass

FRAME_FORMAT = ">hhiB"
FRAME_SIZE = struct.calcsize(FRAME_FORMAT)  # 9 bytes


class PayloadError(ValueError):
    """Base error for frames that cannot be packed or unpacked."""


class PayloadTooShortError(PayloadError):
    """Raised when fewer than FRAME_SIZE bytes are supplied."""

    def __init__(self, length: int):
        super().__init__(f"Expected at least {FRAME_SIZE} bytes, got {length}")
        self.length = length


class PayloadFormatError(PayloadError):
    """Raised when a transport-encoded payload is not valid base64/hex."""


class PayloadEncodeError(PayloadError):
    """Raised when a value does not fit its field's integer range."""


@dataclass(frozen=True)
class FieldSpec:
    name: str; unit: str; scale: int; lo: int; hi: int


FIELDS = [
    FieldSpec("temperature", "°C", 10, -32768, 32767),
    FieldSpec("humidity", "%", 10, -32768, 32767),
    FieldSpec("weight", "kg", 100, -(2**31), 2**31 - 1),
    FieldSpec("battery", "%", 1, 0, 255),
]


def _to_int(value: float, spec: FieldSpec) -> int:
    # round() is half-to-even: 0.05 °C steps land on the even tenth
    raw = int(round(float(value) * spec.scale))
    if raw < spec.lo or raw > spec.hi:
        raise PayloadEncodeError(f"{spec.name}={value} does not fit the frame")
    return raw


def encode(reading: dict) -> bytes:
    """
    Frame layout (9 bytes total):
      [temperature i16 /10][humidity i16 /10][weight i32 /100][battery u8]
    Battery defaults to 100 when absent.
    """
    values = dict(reading)
    values.setdefault("battery", 100)
    ints = [_to_int(values[spec.name], spec) for spec in FIELDS]
    return struct.pack(FRAME_FORMAT, *ints)


def decode(payload: bytes) -> dict:
    """Unpack a frame into engineering units. Range checks are left to the validator."""
    if len(payload) < FRAME_SIZE:
        raise PayloadTooShortError(len(payload))
    raw = struct.unpack_from(FRAME_FORMAT, payload, 0)
    out: dict = {}
    for spec, iv in zip(FIELDS, raw):
        out[spec.name] = int(iv) if spec.scale == 1 else iv / spec.scale
    return out


def decode_base64(frm_payload: str) -> bytes:
    try:
        return base64.b64decode(frm_payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadFormatError("frm_payload is not valid base64") from exc


def to_base64(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")


def to_hex(payload: bytes) -> str:
    return payload.hex().upper()
