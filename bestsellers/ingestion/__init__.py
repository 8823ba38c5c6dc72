"""
Data Ingestion Module
"""
from .client import BooksApiClient, RateLimiter, create_books_api_client
from .orchestrators import BackfillOrchestrator, UpdateOrchestrator, RunReport, weekly_checkpoints

__all__ = [
    "BooksApiClient",
    "RateLimiter",
    "create_books_api_client",
    "BackfillOrchestrator",
    "UpdateOrchestrator",
    "RunReport",
    "weekly_checkpoints",
]
