"""Per-client sliding-window rate limiting for raw sensor posts."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Mapping, Protocol

from .config import RateLimit

DEFAULT_KIND = "api"


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: float = 0.0


class RateLimiter(Protocol):
    def check(self, key: str, kind: str = DEFAULT_KIND) -> RateDecision: ...


class SlidingWindowLimiter:
    """Per-(kind, client) sliding windows; expired clients are swept once a minute."""

    sweep_interval = 60.0

    def __init__(self, limits: Mapping[str, RateLimit], clock: Callable[[], float] = time.monotonic):
        if DEFAULT_KIND not in limits:
            raise ValueError(f"limits must define '{DEFAULT_KIND}'")
        self.limits = dict(limits)
        self._clock = clock
        self._hits: dict[tuple[str, str], deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        for bucket in list(self._hits):
            hits = self._hits[bucket]
            if not hits or now - hits[-1] >= self.limits[bucket[0]].window_seconds:
                del self._hits[bucket]
        self._last_sweep = now

    def check(self, key: str, kind: str = DEFAULT_KIND) -> RateDecision:
        if kind not in self.limits:
            kind = DEFAULT_KIND
        limit = self.limits[kind]
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)
            hits = self._hits.setdefault((kind, key), deque())
            while hits and now - hits[0] >= limit.window_seconds:
                hits.popleft()
            if len(hits) >= limit.max_requests:
                return RateDecision(False, 0, limit.window_seconds - (now - hits[0]))
            hits.append(now)
            return RateDecision(True, limit.max_requests - len(hits))


class AllowAll:
    def check(self, key: str, kind: str = DEFAULT_KIND) -> RateDecision:
        return RateDecision(True, 1)


def client_ip(headers: Mapping[str, str], peer: str | None = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer or "unknown"
