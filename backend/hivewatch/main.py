import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from hivewatch.config import Settings, load_settings
from hivewatch.db import ConnectionProvider
from hivewatch.ratelimit import SlidingWindowLimiter
from hivewatch.routers import alerts, auth, devices, ingest, readings
from hivewatch.ws import Broadcaster

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # connect eagerly so the first webhook does not pay the handshake
        await app.state.db.get_or_connect()
        yield
        await app.state.db.dispose()

    app = FastAPI(title="HiveWatch", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = ConnectionProvider(settings)
    app.state.rate_limiter = SlidingWindowLimiter(settings.rate_limits)
    app.state.broadcaster = Broadcaster()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie,
        same_site=settings.session_same_site,
        https_only=settings.session_https_only,
    )

    # 路由注册
    app.include_router(ingest.router)
    app.include_router(readings.router)
    app.include_router(alerts.router)
    app.include_router(devices.router)
    app.include_router(auth.router)

    @app.get("/health")
    def health():
        return {"ok": True, "db": app.state.db.connected}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("hivewatch.main:app", host="0.0.0.0", port=8000, reload=True)
