"""
API Routes Module
"""
from .health import router as health_router
from .lists import router as lists_router
from .books import router as books_router
from .stats import router as stats_router

__all__ = [
    "health_router",
    "lists_router",
    "books_router",
    "stats_router",
]
