"""
Teamdesk — Application entry point.

This is the **only** file that assembles the app.  Business logic lives in
`services/`; `api/` only translates HTTP to manager calls.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.v1.api import api_router
from app.api.v1.endpoints.auth import limiter
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.db.base import Base
from app.db.session import async_session_factory, engine
from app.db.store import COLLECTIONS, DataStore
from app.services.identity import IdentityService
from app.services.storage import ObjectStorage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    # COLLECTIONS imports every model, so metadata is complete here
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised (%d collections)", len(COLLECTIONS))

    # Seed default admin user on first run
    async with async_session_factory() as session:
        await IdentityService(DataStore(session)).seed_admin(
            settings.FIRST_ADMIN_EMAIL, settings.FIRST_ADMIN_PASSWORD
        )

    logger.info("%s v%s started", settings.PROJECT_NAME, settings.VERSION)
    yield
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Team workspace: tasks, comments, attendance and notices",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.state.limiter = limiter

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Uploaded notice images
    storage = ObjectStorage()
    storage.prepare()
    application.mount(
        storage.public_url,
        StaticFiles(directory=str(storage.root)),
        name="storage",
    )
    logger.info("Object storage served from %s", storage.root)

    return application


app = create_app()
