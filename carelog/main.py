"""
Carelog — Application entry point.

This is the **only** file that assembles the app. The engine, session
factory, ledger and aggregator are built here and handed to routes via
``app.state``; nothing below ``carelog.api`` creates its own.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carelog.api.v1.api import api_router
from carelog.core.config import Settings, settings
from carelog.core.exceptions import register_exception_handlers
from carelog.core.ratelimit import limiter
from carelog.db.base import Base
from carelog.db.session import build_engine, build_session_factory

# Ensure all models are imported so metadata.create_all can see them
from carelog.models.location import Location  # noqa: F401
from carelog.models.shift import Shift, TimeEntry  # noqa: F401
from carelog.models.user import User  # noqa: F401
from carelog.services.analytics import AnalyticsAggregator
from carelog.services.ledger import ShiftLedger

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = app.state.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    logger.info("🚀 %s v%s started", app.title, app.version)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings

    application = FastAPI(
        title=config.PROJECT_NAME,
        description="Shift & time-entry ledger for care workers",
        version=config.VERSION,
        openapi_url=f"{config.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    engine = build_engine(config.DATABASE_URL)
    session_factory = build_session_factory(engine)
    application.state.engine = engine
    application.state.session_factory = session_factory
    application.state.ledger = ShiftLedger(session_factory)
    application.state.aggregator = AnalyticsAggregator(session_factory)
    application.state.limiter = limiter

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=config.API_V1_PREFIX)

    return application


app = create_app()
