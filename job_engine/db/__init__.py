"""
Database module.
Contains database connection, models, and repository implementations.
"""

from job_engine.db.connection import (
    close_db,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_context,
    init_db,
)
from job_engine.db.models import Base, Job

__all__ = [
    "get_async_session",
    "get_session_context",
    "get_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "Job",
    "Base",
]
