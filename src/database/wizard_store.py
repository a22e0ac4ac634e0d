"""
SQL-backed Response Store.

Persists sessions, step responses and sealed report snapshots through the
async SQLAlchemy engine. Works with SQLite (aiosqlite) for development and
PostgreSQL (asyncpg) in production.

Stale writes are rejected with a conditional UPDATE (WHERE version < :new)
so two in-flight saves for the same step can land in any order and the
newest one still wins.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from config.database import DatabaseSettings
from services.logging_config import log_store_call
from wizard.errors import AlreadyCompleted, SessionNotFound, StoreUnavailable
from wizard.models import (
    ReportHandle,
    Session,
    SessionStatus,
    StepResponse,
    StoreAck,
    utcnow,
)
from wizard.report import ReportSnapshot, build_report_snapshot
from wizard.step_catalog import StepCatalog, get_living_catalog
from wizard.store import ResponseStore

from .async_engine import create_engine, get_session_factory, init_database
from .models import ReportRecord, SessionRecord, StepResponseRecord

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_session(record: SessionRecord) -> Session:
    return Session(
        id=record.id,
        client_name=record.client_name,
        project_name=record.project_name,
        current_step_index=record.current_step_index,
        status=SessionStatus(record.status),
        navigation_version=record.navigation_version,
        created_at=_aware(record.created_at),
        completed_at=_aware(record.completed_at),
    )


def _to_response(record: StepResponseRecord) -> StepResponse:
    return StepResponse(
        session_id=record.session_id,
        step_id=record.step_id,
        data=record.data,
        is_completed=record.is_completed,
        version=record.version,
        updated_at=_aware(record.updated_at),
    )


class SQLResponseStore(ResponseStore):
    """
    Response store backed by a SQL database.

    Tables are created on first use. Driver and connection failures surface
    as StoreUnavailable; domain outcomes (SessionNotFound, AlreadyCompleted)
    pass through unchanged.
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[AsyncEngine] = None,
        catalog: Optional[StepCatalog] = None,
    ):
        self._owns_engine = engine is None
        self.engine = engine or create_engine(settings)
        self._session_factory = get_session_factory(self.engine)
        self.catalog = catalog or get_living_catalog()
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if not self._schema_ready:
                await init_database(engine=self.engine)
                self._schema_ready = True

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Open a committed-on-exit session, mapping driver errors to StoreUnavailable."""
        try:
            await self._ensure_schema()
            async with self._session_factory() as db:
                async with db.begin():
                    yield db
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Store operation {operation} failed: {e}")
            raise StoreUnavailable(operation, e) from e

    @staticmethod
    async def _get_session_record(db: AsyncSession, session_id: int) -> SessionRecord:
        record = await db.get(SessionRecord, session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return record

    # -------------------------------------------------------------------------
    # ResponseStore
    # -------------------------------------------------------------------------

    @log_store_call()
    async def create_session(self, client_name: str, project_name: Optional[str] = None) -> Session:
        async with self._transaction("create_session") as db:
            record = SessionRecord(
                client_name=client_name,
                project_name=project_name,
                status=SessionStatus.IN_PROGRESS.value,
                current_step_index=0,
                navigation_version=0,
                created_at=utcnow(),
            )
            db.add(record)
            await db.flush()
            session = _to_session(record)

        logger.info(f"Created session {session.id} for {client_name}")
        return session

    @log_store_call()
    async def load_session(self, session_id: int) -> Tuple[Session, List[StepResponse]]:
        async with self._transaction("load_session") as db:
            record = await self._get_session_record(db, session_id)
            result = await db.execute(
                select(StepResponseRecord)
                .where(StepResponseRecord.session_id == session_id)
                .order_by(StepResponseRecord.id)
            )
            responses = [_to_response(row) for row in result.scalars().all()]
            return _to_session(record), responses

    @log_store_call()
    async def upsert_step_response(
        self,
        session_id: int,
        step_id: str,
        data: str,
        is_completed: bool,
        version: int,
    ) -> StoreAck:
        now = utcnow()
        async with self._transaction("upsert_step_response") as db:
            await self._get_session_record(db, session_id)

            result = await db.execute(
                update(StepResponseRecord)
                .where(
                    StepResponseRecord.session_id == session_id,
                    StepResponseRecord.step_id == step_id,
                    StepResponseRecord.version < version,
                )
                .values(data=data, is_completed=is_completed, version=version, updated_at=now)
            )
            if result.rowcount == 1:
                return StoreAck(applied=True, version=version, updated_at=now)

            existing = (await db.execute(
                select(StepResponseRecord).where(
                    StepResponseRecord.session_id == session_id,
                    StepResponseRecord.step_id == step_id,
                )
            )).scalar_one_or_none()

            if existing is not None:
                logger.debug(
                    f"Discarded stale write for session {session_id} step {step_id}: "
                    f"v{version} <= stored v{existing.version}"
                )
                return StoreAck(
                    applied=False,
                    version=existing.version,
                    updated_at=_aware(existing.updated_at),
                )

            db.add(StepResponseRecord(
                session_id=session_id,
                step_id=step_id,
                data=data,
                is_completed=is_completed,
                version=version,
                created_at=now,
                updated_at=now,
            ))
            await db.flush()

            return StoreAck(applied=True, version=version, updated_at=now)

    @log_store_call()
    async def update_session_navigation(
        self,
        session_id: int,
        current_step_index: int,
        version: int,
    ) -> StoreAck:
        async with self._transaction("update_session_navigation") as db:
            result = await db.execute(
                update(SessionRecord)
                .where(
                    SessionRecord.id == session_id,
                    SessionRecord.navigation_version < version,
                )
                .values(current_step_index=current_step_index, navigation_version=version)
            )
            if result.rowcount == 1:
                return StoreAck(applied=True, version=version)

            record = await self._get_session_record(db, session_id)
            return StoreAck(applied=False, version=record.navigation_version)

    @log_store_call()
    async def complete_session(self, session_id: int) -> ReportHandle:
        now = utcnow()
        async with self._transaction("complete_session") as db:
            result = await db.execute(
                update(SessionRecord)
                .where(
                    SessionRecord.id == session_id,
                    SessionRecord.status == SessionStatus.IN_PROGRESS.value,
                )
                .values(status=SessionStatus.COMPLETED.value, completed_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self._get_session_record(db, session_id)
                raise AlreadyCompleted(session_id)

            record = await self._get_session_record(db, session_id)
            await db.refresh(record)
            rows = await db.execute(
                select(StepResponseRecord).where(StepResponseRecord.session_id == session_id)
            )
            responses = [_to_response(row) for row in rows.scalars().all()]
            snapshot = build_report_snapshot(_to_session(record), responses, self.catalog, generated_at=now)

            handle = ReportHandle(report_id=str(uuid.uuid4()), session_id=session_id, generated_at=now)
            db.add(ReportRecord(
                report_id=handle.report_id,
                session_id=session_id,
                snapshot=snapshot.model_dump(mode="json"),
                generated_at=now,
            ))

        logger.info(f"Session {session_id} completed; report {handle.report_id} sealed")
        return handle

    @log_store_call()
    async def get_report(self, session_id: int) -> ReportSnapshot:
        async with self._transaction("get_report") as db:
            record = (await db.execute(
                select(ReportRecord).where(ReportRecord.session_id == session_id)
            )).scalar_one_or_none()
            if record is None:
                raise SessionNotFound(session_id)
            return ReportSnapshot.model_validate(record.snapshot)

    async def close(self) -> None:
        if self._owns_engine:
            await self.engine.dispose()
