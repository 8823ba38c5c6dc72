"""
FastAPI Application Factory

Creates and configures the read-only query API.
"""

from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from bestsellers.config import get_settings
from bestsellers.exceptions import NotFound
from bestsellers.serving.api.middleware import (
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from bestsellers.serving.api.routes import (
    books_router,
    health_router,
    lists_router,
    stats_router,
)


async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


def create_api_app(lifespan: Optional[Callable[[FastAPI], Any]] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        lifespan: Optional lifespan context manager (database setup/teardown)

    Returns:
        Configured FastAPI app instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Bestsellers Mirror API",
        description="Read-only access to mirrored bestseller lists, books and rankings",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_exception_handler(NotFound, not_found_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(lists_router, prefix="/api/v1/lists", tags=["Lists"])
    app.include_router(books_router, prefix="/api/v1/books", tags=["Books"])
    app.include_router(stats_router, prefix="/api/v1/stats", tags=["Stats"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
