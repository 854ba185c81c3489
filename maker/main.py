"""MAKER FastAPI application."""

import os
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from maker.database import close_db, init_db
from maker.errors import register_exception_handlers
from maker.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from maker.redis import close_redis, init_redis

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB + Redis on startup, cleanup on shutdown."""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json") == "json"
    configure_logging(level=log_level, json_format=json_format)

    logger.info("starting_database_init")
    await init_db()

    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    await init_redis(redis_url)
    logger.info("redis_connected", url=redis_url)

    logger.info("application_started")
    yield

    logger.info("shutting_down")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


app = FastAPI(
    title="MAKER",
    description="Gamified learning: workshops, quests and participant progress",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log entry written while serving a request with its id and path."""
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    bind_request_context(request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


register_exception_handlers(app)

# --- Routers ---
from maker.routes.admin import router as admin_router  # noqa: E402
from maker.routes.auth import router as auth_router  # noqa: E402
from maker.routes.facilitator import router as facilitator_router  # noqa: E402
from maker.routes.navigation import router as navigation_router  # noqa: E402
from maker.routes.participant import router as participant_router  # noqa: E402

app.include_router(auth_router)
app.include_router(navigation_router)
app.include_router(participant_router)
app.include_router(facilitator_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "maker"}
