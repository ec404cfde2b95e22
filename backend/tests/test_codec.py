import struct

import pytest

from hivewatch import codec


def test_decode_known_frame():
    payload = struct.pack(">hhiB", 345, 552, 4530, 87)

    assert codec.decode(payload) == {
        "temperature": 34.5,
        "humidity": 55.2,
        "weight": 45.3,
        "battery": 87,
    }


def test_decode_negative_temperature():
    payload = struct.pack(">hhiB", -105, 900, 0, 100)

    assert codec.decode(payload)["temperature"] == -10.5


def test_decode_does_not_range_check():
    # 150.0 °C is nonsense for a hive but the codec leaves that to the validator
    payload = struct.pack(">hhiB", 1500, 1200, -100, 255)

    decoded = codec.decode(payload)
    assert decoded["temperature"] == 150.0
    assert decoded["humidity"] == 120.0
    assert decoded["weight"] == -1.0
    assert decoded["battery"] == 255


@pytest.mark.parametrize("length", [0, 1, 4, 8])
def test_decode_rejects_short_payload(length):
    with pytest.raises(codec.PayloadTooShortError):
        codec.decode(bytes(length))


def test_decode_ignores_trailing_bytes():
    payload = struct.pack(">hhiB", 352, 585, 4275, 92) + b"\xff\xff"

    assert codec.decode(payload)["battery"] == 92


def test_encode_layout_is_big_endian():
    frame = codec.encode({"temperature": 35.2, "humidity": 58.5, "weight": 42.75, "battery": 92})

    assert len(frame) == codec.FRAME_SIZE == 9
    assert codec.to_hex(frame) == "01600249000010B35C"


def test_encode_defaults_battery_to_full():
    frame = codec.encode({"temperature": 20, "humidity": 50, "weight": 10})

    assert frame[8] == 100


def test_encode_rejects_values_outside_field_width():
    with pytest.raises(codec.PayloadEncodeError):
        codec.encode({"temperature": 5000, "humidity": 50, "weight": 10, "battery": 50})
    with pytest.raises(codec.PayloadEncodeError):
        codec.encode({"temperature": 20, "humidity": 50, "weight": 10, "battery": 300})


@pytest.mark.parametrize(
    "reading",
    [
        {"temperature": -50.0, "humidity": 0.0, "weight": 0.0, "battery": 0},
        {"temperature": 100.0, "humidity": 100.0, "weight": 500.0, "battery": 100},
        {"temperature": 34.56, "humidity": 61.04, "weight": 47.123, "battery": 73},
    ],
)
def test_round_trip_within_fixed_point_tolerance(reading):
    decoded = codec.decode(codec.encode(reading))

    assert decoded["temperature"] == pytest.approx(reading["temperature"], abs=0.1)
    assert decoded["humidity"] == pytest.approx(reading["humidity"], abs=0.1)
    assert decoded["weight"] == pytest.approx(reading["weight"], abs=0.01)
    assert decoded["battery"] == reading["battery"]


def test_base64_helpers():
    frame = codec.encode({"temperature": 35.2, "humidity": 58.5, "weight": 42.75, "battery": 92})

    assert codec.decode_base64(codec.to_base64(frame)) == frame
    with pytest.raises(codec.PayloadFormatError):
        codec.decode_base64("not base64!")
