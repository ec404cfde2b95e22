"""Alert evaluation for hive readings and e-mail delivery of the results."""

from __future__ import annotations

import asyncio
import logging
import os
import smtplib
import ssl
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from email.message import EmailMessage
from typing import Any, Sequence

from .store import ReadingRecord
from .utils import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertThresholdConfig:
    """Per-hive alert settings. Each check can be switched off on its own."""

    enabled: bool = True
    offline: bool = True
    temperature: bool = True
    humidity: bool = True
    battery: bool = True
    weight: bool = True
    temp_min: float = 30.0
    temp_max: float = 36.0
    humidity_min: float = 40.0
    humidity_max: float = 70.0
    battery_min: float = 20.0
    weight_delta_max: float = 2.0
    offline_minutes: float = 60.0
    weight_window_minutes: float = 60.0

    @property
    def weight_window(self) -> timedelta:
        return timedelta(minutes=self.weight_window_minutes)


@dataclass(frozen=True)
class Alert:
    tag: str
    type: str
    title: str
    body: str
    direction: str | None = None
    delta: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _band_alert(kind: str, label: str, unit: str, hive_id: str, value: float, lo: float, hi: float) -> Alert | None:
    if value < lo:
        return Alert(
            tag=f"{kind}-low",
            type=kind,
            title=f"{hive_id} - Low {label}",
            body=f"{label.capitalize()} {value:g}{unit} is below the minimum ({lo:g}{unit})",
        )
    if value > hi:
        return Alert(
            tag=f"{kind}-high",
            type=kind,
            title=f"{hive_id} - High {label}",
            body=f"{label.capitalize()} {value:g}{unit} is above the maximum ({hi:g}{unit})",
        )
    return None


def evaluate(
    latest: ReadingRecord,
    previous: ReadingRecord | None,
    config: AlertThresholdConfig,
    now: datetime,
) -> list[Alert]:
    """Return the alert conditions raised by *latest*.

    *previous* is the newest reading at or before ``now - weight_window``;
    it is only used for the weight-change check.
    """

    if not config.enabled:
        return []

    hive_id = latest.hive_id
    alerts: list[Alert] = []

    age_minutes = (as_utc(now) - as_utc(latest.timestamp)).total_seconds() / 60
    if config.offline and age_minutes > config.offline_minutes:
        alerts.append(
            Alert(
                tag="offline",
                type="offline",
                title=f"{hive_id} - Offline",
                body=f"No data from the device for {round(age_minutes)} minutes",
            )
        )

    if config.temperature:
        alert = _band_alert("temperature", "temperature", "°C", hive_id, latest.temperature, config.temp_min, config.temp_max)
        if alert:
            alerts.append(alert)

    if config.humidity:
        alert = _band_alert("humidity", "humidity", "%", hive_id, latest.humidity, config.humidity_min, config.humidity_max)
        if alert:
            alerts.append(alert)

    if config.battery and latest.battery_level < config.battery_min:
        alerts.append(
            Alert(
                tag="battery-low",
                type="battery",
                title=f"{hive_id} - Low battery",
                body=f"Battery at {latest.battery_level}%, charge or replace the device battery",
            )
        )

    if config.weight and previous is not None:
        change = latest.weight - previous.weight
        if abs(change) > config.weight_delta_max:
            direction = "increase" if change > 0 else "decrease"
            hint = "nectar flow?" if change > 0 else "swarm or theft?"
            alerts.append(
                Alert(
                    tag="weight-change",
                    type="weight",
                    title=f"{hive_id} - Weight change",
                    body=f"Weight {direction} of {abs(change):.1f}kg within the last hour ({hint})",
                    direction=direction,
                    delta=round(change, 2),
                )
            )

    return alerts


@dataclass
class SMTPSettings:
    host: str
    port: int
    use_ssl: bool
    use_starttls: bool
    user: str
    password: str
    from_addr: str
    to_addrs: list[str] = field(default_factory=list)
    timeout: int = 15
    debug: bool = False


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_addresses(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [addr.strip() for addr in raw.split(",") if addr.strip()]


def load_smtp_settings() -> SMTPSettings:
    """Load SMTP settings from the environment."""

    return SMTPSettings(
        host=os.getenv("SMTP_HOST", "localhost"),
        port=int(os.getenv("SMTP_PORT", "587")),
        use_ssl=_env_bool("SMTP_USE_SSL", False),
        use_starttls=_env_bool("SMTP_USE_STARTTLS", True),
        user=os.getenv("SMTP_USER", ""),
        password=os.getenv("SMTP_PASSWORD", ""),
        from_addr=os.getenv("SMTP_FROM", "alerts@hivewatch.local"),
        to_addrs=_split_addresses(os.getenv("SMTP_TO")),
        timeout=int(os.getenv("SMTP_TIMEOUT", "15")),
        debug=_env_bool("SMTP_DEBUG", False),
    )


def _open_smtp_connection(settings: SMTPSettings) -> smtplib.SMTP:
    context = ssl.create_default_context()
    if settings.use_ssl:
        server: smtplib.SMTP = smtplib.SMTP_SSL(
            settings.host, settings.port, timeout=settings.timeout, context=context
        )
    else:
        server = smtplib.SMTP(settings.host, settings.port, timeout=settings.timeout)

    if settings.debug:
        server.set_debuglevel(1)

    server.ehlo()
    if settings.use_starttls and not settings.use_ssl:
        server.starttls(context=context)
        server.ehlo()

    if settings.user and settings.password:
        server.login(settings.user, settings.password)

    return server


def _normalize_recipients(addresses: Sequence[str] | None) -> list[str]:
    if not addresses:
        return []
    seen: set[str] = set()
    normalized: list[str] = []
    for addr in addresses:
        if not isinstance(addr, str):
            continue
        trimmed = addr.strip()
        if not trimmed or trimmed in seen:
            continue
        normalized.append(trimmed)
        seen.add(trimmed)
    return normalized


def _send_all(alerts: Sequence[Alert], settings: SMTPSettings, recipients: Sequence[str] | None) -> int:
    if not alerts:
        return 0

    to_addrs = _normalize_recipients(recipients) or _normalize_recipients(settings.to_addrs)
    if not to_addrs:
        logger.warning("No recipients configured for %d hive alert(s); skipping", len(alerts))
        return 0

    try:
        server = _open_smtp_connection(settings)
    except Exception:
        logger.exception("Failed to open SMTP connection")
        return 0

    sent = 0
    try:
        for alert in alerts:
            try:
                msg = EmailMessage()
                msg["From"] = settings.from_addr
                msg["To"] = ", ".join(to_addrs)
                msg["Subject"] = f"Alert: {alert.title}"
                msg.set_content(alert.body)
                server.send_message(msg)
                sent += 1
            except Exception:
                logger.exception("Failed to send alert email '%s'", alert.tag)
    finally:
        try:
            server.quit()
        except Exception:
            logger.exception("Failed to close SMTP connection")
    return sent


async def dispatch_alerts(alerts: Sequence[Alert], recipients: Sequence[str] | None = None) -> int:
    """Send one e-mail per alert; returns how many were delivered."""

    if not alerts:
        return 0

    settings = load_smtp_settings()
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, _send_all, alerts, settings, recipients)
