"""
Response Store interface.

The engine reaches durable storage only through ResponseStore, with
request/response semantics and no shared memory. Step responses are keyed by
(session_id, step_id) and every upsert replaces the whole record. Each write
carries a version; a store discards writes older than the version it already
holds so a late, superseded save can never overwrite newer answers.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from .errors import AlreadyCompleted, SessionNotFound, StoreUnavailable
from .models import (
    ReportHandle,
    Session,
    SessionStatus,
    StepResponse,
    StoreAck,
    utcnow,
)
from .report import ReportSnapshot, build_report_snapshot
from .step_catalog import StepCatalog, get_living_catalog

logger = logging.getLogger(__name__)


class ResponseStore(ABC):
    """Contract between the wizard engine and durable storage."""

    @abstractmethod
    async def create_session(self, client_name: str, project_name: Optional[str] = None) -> Session:
        """Create a new in-progress session at step 0."""

    @abstractmethod
    async def load_session(self, session_id: int) -> Tuple[Session, List[StepResponse]]:
        """
        Load a session and every step response stored for it.

        Raises:
            SessionNotFound: if the session does not exist
            StoreUnavailable: on transport failure
        """

    @abstractmethod
    async def upsert_step_response(
        self,
        session_id: int,
        step_id: str,
        data: str,
        is_completed: bool,
        version: int,
    ) -> StoreAck:
        """
        Create or fully replace the response for (session_id, step_id).

        A write whose version is not newer than the stored one is discarded
        and acknowledged with applied=False.
        """

    @abstractmethod
    async def update_session_navigation(
        self,
        session_id: int,
        current_step_index: int,
        version: int,
    ) -> StoreAck:
        """Store the session's current step index (same version rule as upserts)."""

    @abstractmethod
    async def complete_session(self, session_id: int) -> ReportHandle:
        """
        Mark a session completed and seal its report snapshot.

        Raises:
            AlreadyCompleted: if the session is already completed
            SessionNotFound: if the session does not exist
            StoreUnavailable: on transport failure
        """

    @abstractmethod
    async def get_report(self, session_id: int) -> ReportSnapshot:
        """
        Get the report snapshot sealed at completion.

        Raises:
            SessionNotFound: if no report exists for the session
        """

    async def close(self) -> None:
        """Release resources held by the store."""


class InMemoryResponseStore(ResponseStore):
    """
    Response store kept in process memory.

    Used for tests and local development. Failures can be injected per
    operation to exercise the engine's sync error paths.
    """

    def __init__(self, catalog: Optional[StepCatalog] = None):
        self.catalog = catalog or get_living_catalog()
        self._sessions: Dict[int, Session] = {}
        self._responses: Dict[Tuple[int, str], StepResponse] = {}
        self._reports: Dict[int, Tuple[ReportHandle, ReportSnapshot]] = {}
        self._next_session_id = 1
        self._lock = asyncio.Lock()
        self._failures: Dict[str, int] = {}
        self.available = True
        self.calls: List[Tuple[str, tuple]] = []

    # -------------------------------------------------------------------------
    # Failure injection
    # -------------------------------------------------------------------------

    def fail_next(self, operation: str, count: int = 1) -> None:
        """Make the next `count` calls of `operation` raise StoreUnavailable."""
        self._failures[operation] = self._failures.get(operation, 0) + count

    def _check_available(self, operation: str) -> None:
        if not self.available:
            raise StoreUnavailable(operation)
        remaining = self._failures.get(operation, 0)
        if remaining > 0:
            self._failures[operation] = remaining - 1
            raise StoreUnavailable(operation)

    def _get_session(self, session_id: int) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    # -------------------------------------------------------------------------
    # ResponseStore
    # -------------------------------------------------------------------------

    async def create_session(self, client_name: str, project_name: Optional[str] = None) -> Session:
        async with self._lock:
            self._check_available("create_session")
            session = Session(
                id=self._next_session_id,
                client_name=client_name,
                project_name=project_name,
            )
            self._next_session_id += 1
            self._sessions[session.id] = session
            logger.info(f"Created session {session.id} for {client_name}")
            return session.model_copy(deep=True)

    async def load_session(self, session_id: int) -> Tuple[Session, List[StepResponse]]:
        async with self._lock:
            self.calls.append(("load_session", (session_id,)))
            self._check_available("load_session")
            session = self._get_session(session_id)
            responses = [
                response.model_copy(deep=True)
                for (sid, _), response in self._responses.items()
                if sid == session_id
            ]
            return session.model_copy(deep=True), responses

    async def upsert_step_response(
        self,
        session_id: int,
        step_id: str,
        data: str,
        is_completed: bool,
        version: int,
    ) -> StoreAck:
        async with self._lock:
            self.calls.append(("upsert_step_response", (session_id, step_id, data, is_completed, version)))
            self._check_available("upsert_step_response")
            self._get_session(session_id)

            key = (session_id, step_id)
            existing = self._responses.get(key)
            if existing is not None and existing.version >= version:
                logger.debug(
                    f"Discarded stale write for session {session_id} step {step_id}: "
                    f"v{version} <= stored v{existing.version}"
                )
                return StoreAck(applied=False, version=existing.version, updated_at=existing.updated_at)

            now = utcnow()
            self._responses[key] = StepResponse(
                session_id=session_id,
                step_id=step_id,
                data=data,
                is_completed=is_completed,
                version=version,
                updated_at=now,
            )
            return StoreAck(applied=True, version=version, updated_at=now)

    async def update_session_navigation(
        self,
        session_id: int,
        current_step_index: int,
        version: int,
    ) -> StoreAck:
        async with self._lock:
            self.calls.append(("update_session_navigation", (session_id, current_step_index, version)))
            self._check_available("update_session_navigation")
            session = self._get_session(session_id)

            if session.navigation_version >= version:
                return StoreAck(applied=False, version=session.navigation_version)

            session.current_step_index = current_step_index
            session.navigation_version = version
            return StoreAck(applied=True, version=version)

    async def complete_session(self, session_id: int) -> ReportHandle:
        async with self._lock:
            self.calls.append(("complete_session", (session_id,)))
            self._check_available("complete_session")
            session = self._get_session(session_id)
            if session.is_completed:
                raise AlreadyCompleted(session_id)

            now = utcnow()
            session.status = SessionStatus.COMPLETED
            session.completed_at = now

            responses = [r for (sid, _), r in self._responses.items() if sid == session_id]
            snapshot = build_report_snapshot(session, responses, self.catalog, generated_at=now)
            handle = ReportHandle(report_id=str(uuid.uuid4()), session_id=session_id, generated_at=now)
            self._reports[session_id] = (handle, snapshot)
            logger.info(f"Session {session_id} completed; report {handle.report_id} sealed")
            return handle.model_copy()

    async def get_report(self, session_id: int) -> ReportSnapshot:
        async with self._lock:
            self._check_available("get_report")
            entry = self._reports.get(session_id)
            if entry is None:
                raise SessionNotFound(session_id)
            return entry[1].model_copy(deep=True)


def create_response_store(settings=None, catalog: Optional[StepCatalog] = None) -> ResponseStore:
    """
    Create the response store selected by configuration.

    Args:
        settings: Application settings (loaded from env if omitted)
        catalog: Step catalog used to seal report snapshots

    Returns:
        A ResponseStore implementation
    """
    if settings is None:
        from config.settings import get_settings
        settings = get_settings()

    if settings.store_backend == "memory":
        return InMemoryResponseStore(catalog=catalog)

    from database.wizard_store import SQLResponseStore
    return SQLResponseStore(catalog=catalog)
