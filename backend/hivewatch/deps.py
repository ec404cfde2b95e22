import math
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings
from .db import ConnectionProvider
from .pipeline import IngestionPipeline
from .ratelimit import RateLimiter, client_ip
from .store import HiveStore
from .ws import Broadcaster


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_provider(request: Request) -> ConnectionProvider:
    return request.app.state.db


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


async def get_db(provider: ConnectionProvider = Depends(get_provider)) -> AsyncGenerator[AsyncSession, None]:
    factory = await provider.get_or_connect()
    async with factory() as session:
        yield session


def get_store(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> HiveStore:
    return HiveStore(db, timeout=settings.store_timeout)


def get_pipeline(
    store: HiveStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> IngestionPipeline:
    return IngestionPipeline(
        store,
        rate_limiter=limiter,
        default_hive_id=settings.default_hive_id,
        weight_max=settings.weight_max_kg,
    )


def rate_limited(kind: str):
    """Dependency factory applying the ``kind`` limit per client address."""

    def dependency(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
        key = client_ip(request.headers, request.client.host if request.client else None)
        decision = limiter.check(key, kind)
        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests, please try again later",
                headers={"Retry-After": str(math.ceil(decision.retry_after))},
            )

    return dependency
