"""
SQLAlchemy ORM Models for the wizard response store.

Tables:
- wizard_sessions: one row per questionnaire session
- wizard_step_responses: at most one row per (session, step); overwritten on upsert
- wizard_reports: report snapshot sealed when a session completes

Step payloads are kept as the serialized JSON text the engine sends, so a
corrupted payload stays visible to hydration instead of failing at the
driver level.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey,
    Index, CheckConstraint, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Cross-database compatible JSON type
# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        return dialect.type_descriptor(JSON())


Base = declarative_base()


class SessionRecord(Base):
    """Questionnaire session row."""
    __tablename__ = "wizard_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_name = Column(String(255), nullable=False)
    project_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="in_progress")
    current_step_index = Column(Integer, nullable=False, default=0)
    navigation_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('in_progress', 'completed')", name="ck_wizard_session_status"),
        CheckConstraint("current_step_index >= 0", name="ck_wizard_session_step_index"),
    )


class StepResponseRecord(Base):
    """Latest answers for one step of one session."""
    __tablename__ = "wizard_step_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("wizard_sessions.id", ondelete="CASCADE"), nullable=False)
    step_id = Column(String(50), nullable=False)
    data = Column(Text, nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "step_id", name="uq_wizard_response_session_step"),
        Index("idx_wizard_responses_session", "session_id"),
    )


class ReportRecord(Base):
    """Report snapshot sealed at completion."""
    __tablename__ = "wizard_reports"

    report_id = Column(String(36), primary_key=True)
    session_id = Column(Integer, ForeignKey("wizard_sessions.id", ondelete="CASCADE"), nullable=False, unique=True)
    snapshot = Column(JSONB, nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
