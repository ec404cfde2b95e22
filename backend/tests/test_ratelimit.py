import pytest

from hivewatch.config import RateLimit
from hivewatch.ratelimit import SlidingWindowLimiter, client_ip


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def _limiter(clock):
    return SlidingWindowLimiter(
        {"api": RateLimit(3, 60), "sensor": RateLimit(2, 60)},
        clock=clock,
    )


def test_sensor_limit_blocks_after_max(clock):
    limiter = _limiter(clock)

    assert limiter.check("10.0.0.1", "sensor").remaining == 1
    assert limiter.check("10.0.0.1", "sensor").allowed is True
    clock.now += 10
    decision = limiter.check("10.0.0.1", "sensor")

    assert decision.allowed is False
    assert decision.retry_after == pytest.approx(50)


def test_window_slides(clock):
    limiter = _limiter(clock)
    limiter.check("10.0.0.1", "sensor")
    clock.now += 30
    limiter.check("10.0.0.1", "sensor")

    clock.now += 31
    assert limiter.check("10.0.0.1", "sensor").allowed is True
    assert limiter.check("10.0.0.1", "sensor").allowed is False


def test_clients_and_kinds_are_independent(clock):
    limiter = _limiter(clock)
    for _ in range(2):
        limiter.check("10.0.0.1", "sensor")

    assert limiter.check("10.0.0.2", "sensor").allowed is True
    assert limiter.check("10.0.0.1", "api").allowed is True


def test_unknown_kind_uses_api_limit(clock):
    limiter = _limiter(clock)
    results = [limiter.check("k", "uploads").allowed for _ in range(4)]

    assert results == [True, True, True, False]


def test_api_limit_is_required():
    with pytest.raises(ValueError):
        SlidingWindowLimiter({"sensor": RateLimit(1, 1)})


@pytest.mark.parametrize(
    "headers, peer, expected",
    [
        ({"x-forwarded-for": "203.0.113.7, 10.0.0.1"}, "10.0.0.1", "203.0.113.7"),
        ({"x-real-ip": " 198.51.100.4 "}, "10.0.0.1", "198.51.100.4"),
        ({"x-forwarded-for": " , 10.0.0.1"}, "10.0.0.2", "10.0.0.2"),
        ({}, "127.0.0.1", "127.0.0.1"),
        ({}, None, "unknown"),
    ],
)
def test_client_ip(headers, peer, expected):
    assert client_ip(headers, peer) == expected


def test_expired_clients_are_swept(clock):
    limiter = SlidingWindowLimiter({"api": RateLimit(5, 1)}, clock=clock)
    for n in range(1000):
        limiter.check(f"10.1.{n // 256}.{n % 256}")

    clock.now += 100
    limiter.check("10.9.9.9")

    assert list(limiter._hits) == [("api", "10.9.9.9")]


def test_sweep_keeps_clients_inside_their_window(clock):
    limiter = SlidingWindowLimiter({"api": RateLimit(5, 60), "sensor": RateLimit(1, 120)}, clock=clock)
    limiter.check("old", "api")
    clock.now += 50
    limiter.check("recent", "api")
    limiter.check("device", "sensor")

    clock.now += 30
    limiter.check("new", "api")

    assert set(limiter._hits) == {("api", "recent"), ("sensor", "device"), ("api", "new")}
    assert limiter.check("device", "sensor").allowed is False
