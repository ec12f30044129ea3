import sys
from fastapi import FastAPI
from contextlib import asynccontextmanager
from loguru import logger
from opsdesk.core.config import settings
from opsdesk.api.v1.router import api_router
from opsdesk.core.database import init_db, dispose_db
from opsdesk.core.errors import register_exception_handlers
from opsdesk.core.redis_client import init_redis_client, close_redis_client


def configure_logging():
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles startup and shutdown events for the FastAPI application.
    Initializes and closes connections to external services.
    """
    configure_logging()
    logger.info("Opsdesk runbook service starting up...")

    # The database is required; init_db retries and re-raises when it gives up
    await init_db()
    logger.info("Database startup initialization complete.")

    # Redis only backs the generation lock, so the service starts without it
    await init_redis_client()

    yield

    logger.info("Opsdesk runbook service shutting down...")
    await close_redis_client()
    await dispose_db()


app=FastAPI(
    title="Opsdesk",
    description="Operations runbook engine: SOP task generation, task lifecycle and account onboarding.",
    version="1.0.0",
    lifespan=lifespan
)

register_exception_handlers(app)
app.include_router(api_router,prefix="/v1")
