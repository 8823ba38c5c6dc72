"""
Bestsellers Mirror API

ASGI entry point: `uvicorn bestsellers.main:app`.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from bestsellers.config import get_settings
from bestsellers.config.logging import configure_logging
from bestsellers.database.connection import init_database, close_database
from bestsellers.serving.api.main import create_api_app

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting Bestsellers Mirror API", environment=get_settings().app_env)

    await init_database(create_tables=True)
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_database()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
