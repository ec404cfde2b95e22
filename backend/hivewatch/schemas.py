from typing import Optional, Any, Literal
from pydantic import BaseModel, Field, AliasChoices, ConfigDict

from .alerting import AlertThresholdConfig


class IngestAck(BaseModel):
    success: bool
    message: str
    hiveId: Optional[str] = None
    hiveName: Optional[str] = None
    readingId: Optional[int] = None
    timestamp: Optional[str] = None
    devEUI: Optional[str] = None


class ReadingOut(BaseModel):
    id: Optional[int] = None
    hiveId: str
    temperature: float
    humidity: float
    weight: float
    battery: int
    signalStrength: Optional[float] = None
    source: str
    timestamp: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class LatestOut(BaseModel):
    temperature: float = 0
    humidity: float = 0
    weight: float = 0
    battery: int = 0
    lastUpdate: Optional[str] = None


class AlertSettingsIn(BaseModel):
    """Per-check toggles, with optional threshold overrides."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    temperature: bool = True
    humidity: bool = True
    battery: bool = True
    weight: bool = True
    offline: bool = True
    temp_min: Optional[float] = Field(default=None, validation_alias=AliasChoices("temp_min", "tempMin"))
    temp_max: Optional[float] = Field(default=None, validation_alias=AliasChoices("temp_max", "tempMax"))
    humidity_min: Optional[float] = Field(default=None, validation_alias=AliasChoices("humidity_min", "humidityMin"))
    humidity_max: Optional[float] = Field(default=None, validation_alias=AliasChoices("humidity_max", "humidityMax"))
    battery_min: Optional[float] = Field(default=None, validation_alias=AliasChoices("battery_min", "batteryMin"))
    weight_delta_max: Optional[float] = Field(default=None, validation_alias=AliasChoices("weight_delta_max", "weightDeltaMax"))
    offline_minutes: Optional[float] = Field(default=None, validation_alias=AliasChoices("offline_minutes", "offlineMinutes"))

    def to_config(self) -> AlertThresholdConfig:
        overrides = {
            k: v
            for k, v in self.model_dump().items()
            if v is not None
        }
        return AlertThresholdConfig(**overrides)


class AlertOut(BaseModel):
    tag: str
    type: str
    title: str
    body: str
    direction: Optional[str] = None
    delta: Optional[float] = None


class AlertCheckOut(BaseModel):
    alerts: list[AlertOut]
    latest: Optional[ReadingOut] = None
    notified: int = 0


class DeviceAssignIn(BaseModel):
    type: Literal["manual", "api", "esp32-wifi", "lorawan"] = Field(validation_alias=AliasChoices("type", "device_type"))
    devEUI: Optional[str] = Field(default=None, validation_alias=AliasChoices("devEUI", "dev_eui"))
    apiKey: Optional[str] = Field(default=None, validation_alias=AliasChoices("apiKey", "api_key"))


class DeviceOut(BaseModel):
    hiveId: str
    type: Optional[str] = None
    devEUI: Optional[str] = None
    lastSeen: Optional[str] = None
    signalStrength: Optional[float] = None
    batteryLevel: Optional[int] = None


class LoRaWANDeviceStats(BaseModel):
    deviceId: str
    hiveId: str
    lastSeen: str
    totalMessages: int
    avgRssi: Optional[float] = None
    avgSnr: Optional[float] = None
    minBattery: Optional[int] = None
    latestBattery: Optional[int] = None


class LoRaWANDevicesOut(BaseModel):
    count: int
    devices: list[LoRaWANDeviceStats]
