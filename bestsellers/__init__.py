"""
Bestsellers Mirror

Local mirror of the NYT Best Sellers lists with a read-only query API.
"""

__version__ = "1.0.0"
