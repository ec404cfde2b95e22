import asyncio

import pytest

from hivewatch import db as db_module
from hivewatch.config import Settings
from hivewatch.db import ConnectionProvider


class _FakeEngine:
    def __init__(self):
        self.disposed = False

    async def dispose(self):
        self.disposed = True


def test_concurrent_callers_share_one_engine(monkeypatch):
    provider = ConnectionProvider(Settings(database_url="sqlite+aiosqlite:///:memory:"))
    created = []

    def fake_engine():
        created.append(_FakeEngine())
        return created[-1]

    monkeypatch.setattr(provider, "_create_engine", fake_engine)
    monkeypatch.setattr(db_module, "async_sessionmaker", lambda engine, **kw: ("factory", engine))

    async def scenario():
        return await asyncio.gather(*(provider.get_or_connect() for _ in range(10)))

    factories = asyncio.run(scenario())

    assert len(created) == 1
    assert all(f is factories[0] for f in factories)
    assert provider.connected is True
    assert provider.engine is created[0]


def test_dispose_allows_reconnect(monkeypatch):
    provider = ConnectionProvider(Settings(database_url="sqlite+aiosqlite:///:memory:"))
    created = []
    monkeypatch.setattr(provider, "_create_engine", lambda: created.append(_FakeEngine()) or created[-1])
    monkeypatch.setattr(db_module, "async_sessionmaker", lambda engine, **kw: ("factory", engine))

    async def scenario():
        await provider.get_or_connect()
        await provider.dispose()
        assert provider.connected is False
        await provider.get_or_connect()

    asyncio.run(scenario())

    assert len(created) == 2
    assert created[0].disposed is True


def test_engine_requires_connection():
    provider = ConnectionProvider(Settings(database_url="sqlite+aiosqlite:///:memory:"))

    with pytest.raises(RuntimeError):
        provider.engine
