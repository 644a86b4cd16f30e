import asyncio
import contextlib
import os
import uuid

import structlog
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .config import get_settings
from .logging_config import configure_logging
from .metrics import ACTIVE_SESSION_ELAPSED_SECONDS
from .redis_client import close_redis, init_redis
from .routers.session import router as session_router
from .services.persistence_client import PersistenceGateway
from .services.session_cache import LocalSessionCache
from .services.session_synchronizer import SessionSynchronizer

configure_logging()
logger = structlog.get_logger(__name__)


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ORIGINS", "*")
    return ["*"] if raw == "*" else [o.strip() for o in raw.split(",") if o.strip()]


def build_synchronizer() -> SessionSynchronizer:
    settings = get_settings()
    gateway = PersistenceGateway(owner_id=settings.DEVICE_USER_ID)
    return SessionSynchronizer(gateway=gateway, cache=LocalSessionCache())


def create_app(synchronizer: SessionSynchronizer | None = None) -> FastAPI:
    app = FastAPI(title="active-session-service", version="0.1.0")
    app.state.synchronizer = synchronizer
    app.state.ticker = None

    Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    origins = _cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name="X-Request-ID",
        generator=lambda: str(uuid.uuid4()),
        update_request_header=True,
    )

    @app.get("/health")
    async def health():
        synchronizer: SessionSynchronizer = app.state.synchronizer
        return {
            "status": "ok",
            "session_state": synchronizer.state.value,
            "pending_writes": synchronizer.ledger.pending_writes,
        }

    @app.on_event("startup")
    async def startup_event():
        if app.state.synchronizer is None:
            await init_redis()
            app.state.synchronizer = build_synchronizer()
        synchronizer: SessionSynchronizer = app.state.synchronizer
        state = await synchronizer.hydrate()
        logger.info("active_session_service_started", session_state=state.value, session_id=synchronizer.session_id)
        synchronizer.clock.subscribe(ACTIVE_SESSION_ELAPSED_SECONDS.set)
        app.state.ticker = asyncio.create_task(synchronizer.clock.run(get_settings().TIMER_TICK_SECONDS))

    @app.on_event("shutdown")
    async def shutdown_event():
        ticker = app.state.ticker
        if ticker is not None:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
        await app.state.synchronizer.drain()
        await close_redis()

    app.include_router(session_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8010")))
