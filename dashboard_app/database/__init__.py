"""
Database module for the content dashboard.
"""

from .connection import Base, SessionLocal, engine, get_db

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_db",
]
