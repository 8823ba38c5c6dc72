"""
Serving Module
"""
from .queries import BestsellerQueries

__all__ = ["BestsellerQueries"]
