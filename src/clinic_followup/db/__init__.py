"""Database module.

Provides:
- SQLAlchemy ORM models for appointments, communications and pending requests
- Async session management with dependency injection
- Repository pattern for data access
"""
from clinic_followup.db.base import Base, TimestampMixin, UUIDMixin
from clinic_followup.db.session import (
    close_db,
    create_test_engine,
    get_db,
    get_db_context,
    get_engine,
    get_session_factory,
    init_db,
    make_session_factory,
)

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "get_engine",
    "get_session_factory",
    "make_session_factory",
    "get_db",
    "get_db_context",
    "init_db",
    "close_db",
    "create_test_engine",
]
