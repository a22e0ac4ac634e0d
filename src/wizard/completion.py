"""Completion Gate.

Moves a session from in_progress to completed exactly once. Completion is
safe to call repeatedly: a second call, or a network retry of a call that
already went through, reports AlreadyCompleted as a notice instead of
failing, and never issues a second completion write for a session known
to be completed. Step data is not checked; every field is optional.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import AlreadyCompleted
from .models import ReportHandle, Session, SessionStatus, utcnow
from .store import ResponseStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of a completion request."""
    session_id: int
    already_completed: bool
    report: Optional[ReportHandle] = None


class CompletionGate:
    """Performs the terminal in_progress -> completed transition."""

    def __init__(self, store: ResponseStore):
        self.store = store

    async def complete(self, session: Session) -> CompletionResult:
        """
        Complete a session.

        The passed session is updated in place on success so the caller's
        cached copy reflects the new status.

        Args:
            session: The caller's cached session record

        Returns:
            CompletionResult; already_completed is True when nothing changed

        Raises:
            StoreUnavailable: transport failure (retry is the caller's job)
            SessionNotFound: the session does not exist
        """
        if session.status == SessionStatus.COMPLETED:
            logger.info(f"Session {session.id} already completed; no write issued")
            return CompletionResult(session_id=session.id, already_completed=True)

        try:
            handle = await self.store.complete_session(session.id)
        except AlreadyCompleted:
            logger.info(f"Store reports session {session.id} already completed")
            self._mark_completed(session)
            return CompletionResult(session_id=session.id, already_completed=True)

        self._mark_completed(session, handle.generated_at)
        logger.info(
            f"Session {session.id} completed",
            extra={'extra_data': {'report_id': handle.report_id}},
        )
        return CompletionResult(session_id=session.id, already_completed=False, report=handle)

    @staticmethod
    def _mark_completed(session: Session, when=None) -> None:
        session.status = SessionStatus.COMPLETED
        if session.completed_at is None:
            session.completed_at = when or utcnow()
