from datetime import datetime
from typing import Any

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, TIMESTAMP, JSON, text, ForeignKey, Float, BigInteger, Index, DateTime, func
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONDoc = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    role: Mapped[str] = mapped_column(String(16), default="user", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    hives: Mapped[list["Hive"]] = relationship("Hive", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)


class Hive(Base):
    __tablename__ = "hives"
    id: Mapped[str] = mapped_column(String(32), primary_key=True)  # HIVE-001
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    location: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    owner: Mapped["User"] = relationship("User", back_populates="hives")
    device: Mapped["Device | None"] = relationship("Device", back_populates="hive", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

    @classmethod
    def from_legacy(cls, entry: Any, owner_id: int) -> "Hive":
        """Build a hive from an owned-hives entry that may be a bare id string."""
        if isinstance(entry, str):
            return cls(id=entry, owner_id=owner_id, name=f"Hive {entry.replace('HIVE-', '')}", location="")
        device = entry.get("device") or None
        hive = cls(
            id=entry["id"],
            owner_id=owner_id,
            name=entry.get("name") or entry["id"],
            location=entry.get("location") or "",
        )
        if device:
            dev_eui = device.get("devEUI")
            hive.device = Device(
                type=device.get("type") or "manual",
                dev_eui=dev_eui.upper() if dev_eui else None,
                api_key=device.get("apiKey"),
            )
        return hive


class Device(Base):
    __tablename__ = "devices"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hive_id: Mapped[str] = mapped_column(String(32), ForeignKey("hives.id", ondelete="CASCADE"), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(16), default="manual", nullable=False)
    dev_eui: Mapped[str | None] = mapped_column(String(16), unique=True, index=True, nullable=True)
    api_key: Mapped[str | None] = mapped_column(String(128), index=True, nullable=True)
    last_seen: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    signal_strength: Mapped[float | None] = mapped_column(Float, nullable=True)
    battery_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hive: Mapped["Hive"] = relationship("Hive", back_populates="device")


class Reading(Base):
    __tablename__ = "readings"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    hive_id: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    ts: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), index=True)
    temperature: Mapped[float] = mapped_column(Float, nullable=False)
    humidity: Mapped[float] = mapped_column(Float, nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    battery_level: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    signal_strength: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String(16), default="WiFi", nullable=False)
    meta: Mapped[dict | None] = mapped_column(JSONDoc, nullable=True)


Index("ix_readings_hive_ts_desc", Reading.hive_id, Reading.ts.desc())
