"""
Database connectivity module for the sync services.

PostgreSQL connectivity with upsert capabilities using SQLAlchemy 2.x and psycopg3.
"""

from .connector import get_engine, upsert

__all__ = ["get_engine", "upsert"]
