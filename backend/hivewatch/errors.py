"""Domain errors raised by the ingestion core and translated by the routers."""

from __future__ import annotations


class IngestError(Exception):
    """Base error for ingestion failures; carries the HTTP status to report."""

    status_code = 500

    def __init__(self, message: str, *, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])


class TransportError(IngestError):
    """Malformed envelope or undersized binary payload."""

    status_code = 400


class ReadingRejected(IngestError):
    """The reading failed validation; ``errors`` lists every violated rule."""

    status_code = 400


class Unauthorized(IngestError):
    status_code = 401


class Forbidden(IngestError):
    status_code = 403


class RateLimited(IngestError):
    status_code = 429


class StoreError(IngestError):
    """The document store failed; nothing is retried."""

    status_code = 500


class StoreTimeout(StoreError):
    status_code = 503


class DeviceConflict(Exception):
    """Raised when a devEUI is already assigned to another hive."""

    def __init__(self, dev_eui: str, hive_id: str):
        super().__init__(f"devEUI {dev_eui} is already assigned to {hive_id}")
        self.dev_eui = dev_eui
        self.hive_id = hive_id
