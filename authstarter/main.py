# authstarter/main.py
"""
Application factory.

    uvicorn authstarter.main:create_app --factory
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from authstarter.api.errors import install_error_handlers
from authstarter.api.routes.auth import router as auth_router
from authstarter.api.routes.protected import router as protected_router
from authstarter.core.config import Settings
from authstarter.core.logging import setup_logging
from authstarter.core.security import now_utc
from authstarter.core.tokens import TokenCodec
from authstarter.db.session import Database
from authstarter.services.auth_service import AuthService
from authstarter.services.mailer import EmailDispatcher, Mailer, build_mailer
from authstarter.services.scheduler_service import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    mailer: Optional[Mailer] = None,
    database: Optional[Database] = None,
    clock: Callable[[], datetime] = now_utc,
    configure_logging: bool = True,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_json)

    database = database or Database(settings.database_url, pool_pre_ping=True)
    codec = TokenCodec.from_settings(settings, clock=clock)
    auth = AuthService(
        database.sessions,
        codec,
        settings,
        mailer or build_mailer(settings),
        EmailDispatcher(),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.session_cleanup_enabled:
            start_scheduler(database.sessions, codec.refresh_ttl, settings.session_cleanup_interval_min)
        logger.info(f"{settings.app_name} started ({settings.environment})")
        try:
            yield
        finally:
            stop_scheduler()
            await auth.dispatcher.drain()
            await database.dispose()
            logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.auth_service = auth

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=bool(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app, expose_details=not settings.is_production)

    # Routers
    app.include_router(auth_router)
    app.include_router(protected_router)

    @app.get("/health", tags=["ops"])
    async def health():
        return {"ok": True}

    @app.get("/ready", tags=["ops"])
    async def ready():
        if await database.ping():
            return {"ready": True}
        return JSONResponse(status_code=503, content={"ready": False})

    return app
