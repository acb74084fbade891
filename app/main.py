from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.auth import router as auth_router
from app.api.classes import router as classes_router
from app.api.errors import register_exception_handlers
from app.api.health import router as health_router
from app.api.lessons import router as lessons_router
from app.api.levels import router as levels_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.modules import router as modules_router
from app.api.progress import router as progress_router
from app.api.reports import router as reports_router
from app.api.users import router as users_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db import engine as db_engine
from app.db.engine import lifespan_db
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.repos.registry import in_memory_repos, sql_repos
from app.services.users_service import ensure_bootstrap_admin

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


async def bootstrap_admin() -> None:
    """Create the first admin from BOOTSTRAP_ADMIN_* when it does not exist."""
    if not SETTINGS.has_bootstrap_admin:
        return
    username = SETTINGS.bootstrap_admin_username
    password = SETTINGS.bootstrap_admin_password
    factory = db_engine.async_session_factory
    if factory is None:
        await ensure_bootstrap_admin(in_memory_repos(), username, password)
        return
    async with factory() as session:
        await ensure_bootstrap_admin(sql_repos(session), username, password)
        await session.commit()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db():
        await bootstrap_admin()
        yield


app = FastAPI(
    title="english-platform-api",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext -> Metrics -> CORS -> route.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(levels_router)
app.include_router(modules_router)
app.include_router(lessons_router)
app.include_router(classes_router)
app.include_router(progress_router)
app.include_router(reports_router)

logger.info(
    "english-platform-api started  env=%s log_level=%s port=%d store=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "database" if db_engine.engine is not None else "memory",
    "on" if SETTINGS.is_dev else "off",
)
