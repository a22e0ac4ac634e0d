"""
Database layer for the wizard session engine.

This module provides:
- SQLAlchemy ORM models for sessions, step responses and sealed reports
- Async database engine with connection pooling
- SQLResponseStore, the durable ResponseStore implementation
"""

from .models import (
    Base,
    ReportRecord,
    SessionRecord,
    StepResponseRecord,
)

from .async_engine import (
    close_database,
    create_engine,
    get_async_engine,
    get_async_session,
    get_session_factory,
    init_database,
)

from .wizard_store import SQLResponseStore

__all__ = [
    # Models
    "Base",
    "SessionRecord",
    "StepResponseRecord",
    "ReportRecord",
    # Engine
    "create_engine",
    "get_async_engine",
    "get_async_session",
    "get_session_factory",
    "init_database",
    "close_database",
    # Store
    "SQLResponseStore",
]
