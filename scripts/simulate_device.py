import os, random, time
from datetime import datetime, timezone

import requests

from hivewatch.codec import encode, to_base64, to_hex

API = os.getenv("API", "http://localhost:8000")
DEV_EUI = os.getenv("DEV_EUI", "70B3D57ED005E2E1")
HIVE_ID = os.getenv("HIVE_ID", "HIVE-001")
PERIOD = float(os.getenv("PERIOD_SECONDS", "5"))


def next_reading(state: dict) -> dict:
    # slow drift around a healthy brood-nest climate
    state["temperature"] = min(38.0, max(30.0, state["temperature"] + random.uniform(-0.3, 0.3)))
    state["humidity"] = min(70.0, max(45.0, state["humidity"] + random.uniform(-1.0, 1.0)))
    state["weight"] = max(0.0, state["weight"] + random.uniform(-0.05, 0.08))
    state["battery"] = max(0, state["battery"] - (1 if random.random() < 0.02 else 0))
    return {k: round(v, 2) if isinstance(v, float) else v for k, v in state.items()}


def ttn_envelope(reading: dict) -> dict:
    frame = encode(reading)
    return {
        "end_device_ids": {"dev_eui": DEV_EUI, "device_id": f"beehive-{HIVE_ID.lower()}"},
        "uplink_message": {
            "frm_payload": to_base64(frame),
            "rx_metadata": [{"rssi": random.randint(-110, -70), "snr": round(random.uniform(-5, 10), 1),
                             "gateway_ids": {"gateway_id": "sim-gateway"}}],
            "settings": {"data_rate": {"lora": {"spreading_factor": 7}}, "frequency": "868100000"},
            "received_at": datetime.now(timezone.utc).isoformat(),
        },
    }


def main():
    state = {"temperature": 34.5, "humidity": 58.0, "weight": 42.0, "battery": 95}
    while True:
        reading = next_reading(state)
        body = ttn_envelope(reading)
        r = requests.post(f"{API}/ingest/lorawan", json=body, timeout=5)
        print(to_hex(encode(reading)), r.status_code, r.json())
        time.sleep(PERIOD)


if __name__ == "__main__":
    main()
