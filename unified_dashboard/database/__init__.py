"""
Database Module
"""
from .connection import init_database, close_database, get_session_factory, session_scope
from .models import Base, ApiCache, ApiSettings

__all__ = [
    "init_database",
    "close_database",
    "get_session_factory",
    "session_scope",
    "Base",
    "ApiCache",
    "ApiSettings",
]
