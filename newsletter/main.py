import structlog
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text

from newsletter.api import subscriptions
from newsletter.config import get_settings
from newsletter.database import dispose_engine, get_engine, init_db
from newsletter.logging_config import configure_logging
from newsletter.middleware.request_id import RequestIdMiddleware

# Configure structured logging
configure_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.init_db_on_startup:
        await init_db()
        logger.info("Database initialized")

    yield

    await dispose_engine()
    logger.info("Shutting down...")


app = FastAPI(
    title="Newsletter API",
    description="Newsletter subscription registry",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None if settings.app_env == "production" else "/docs",
    redoc_url=None if settings.app_env == "production" else "/redoc",
    openapi_url=None if settings.app_env == "production" else "/openapi.json",
)

app.add_middleware(RequestIdMiddleware)

app.include_router(subscriptions.router)


@app.get("/health_check")
async def health_check():
    """Liveness check: the process is up and serving requests."""
    return Response(status_code=200)


@app.get("/health")
async def health():
    """Readiness: the subscriptions database answers a trivial query."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check failed", error_type=type(e).__name__, error=str(e))
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "disconnected"})
    return {"status": "healthy", "database": "connected"}
