"""Sync Agent.

Turns controller mutations into store writes. Each step write carries the
whole field map for that step plus a per-step version that only ever grows,
so repeated or reordered delivery is harmless: the store keeps the newest
version and the agent ignores outcomes that arrive after a newer one.

There is no queue and no automatic retry. A failed step write surfaces as
SyncFailed; the edit stays in the controller's working state until a later
write (or an explicit retry) gets through.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import StoreUnavailable, SyncFailed
from .models import StepResponse, StoreAck, SyncStatus, WriteState, serialize_field_map, utcnow
from .store import ResponseStore

logger = logging.getLogger(__name__)


class SyncAgent:
    """Persists step field maps and navigation for one session."""

    def __init__(self, store: ResponseStore, session_id: int):
        self.store = store
        self.session_id = session_id
        self._steps: Dict[str, WriteState] = {}
        self._navigation = WriteState()

    def _step_state(self, step_id: str) -> WriteState:
        return self._steps.setdefault(step_id, WriteState())

    def seed(self, responses: Iterable[StepResponse], navigation_version: int = 0) -> None:
        """
        Continue version numbering from what the store already holds.

        Called after hydration so the first write of a resumed session is
        newer than every stored record.
        """
        for response in responses:
            self._step_state(response.step_id).seed(response.version)
        self._navigation.seed(navigation_version)

    def discard_failures(self) -> List[str]:
        """
        Drop failure records whose edits are no longer held in memory.

        Version numbering is kept. Returns the step ids that had a failed
        write, plus "navigation" when the index write had failed.
        """
        discarded = [step_id for step_id, state in self._steps.items() if state.clear_failure()]
        if self._navigation.clear_failure():
            discarded.append("navigation")
        return discarded

    async def persist_step(self, step_id: str, field_map: Mapping[str, Any]) -> StoreAck:
        """
        Upsert the full field map of a step.

        Returns:
            The store acknowledgement

        Raises:
            SyncFailed: the store was unavailable
            SessionNotFound: the session no longer exists
        """
        state = self._step_state(step_id)
        version = state.next_version()
        payload = serialize_field_map(field_map)

        try:
            ack = await self.store.upsert_step_response(
                self.session_id,
                step_id,
                payload,
                is_completed=True,
                version=version,
            )
        except StoreUnavailable as e:
            current = state.record_failure(version, e)
            logger.warning(
                f"Step {step_id} v{version} not saved for session {self.session_id}: {e}",
                extra={'extra_data': {'step_id': step_id, 'version': version, 'superseded': not current}},
            )
            raise SyncFailed(step_id, version, e) from e
        except Exception as e:
            state.record_failure(version, e)
            raise

        state.record_success(version, ack.updated_at or utcnow())
        if not ack.applied:
            logger.debug(f"Store kept a newer version of step {step_id} than v{version}")
        else:
            logger.debug(f"Saved step {step_id} v{version} for session {self.session_id}")
        return ack

    async def persist_navigation(self, index: int) -> StoreAck:
        """
        Upsert the session's current step index.

        Raises:
            SyncFailed: the store was unavailable
            SessionNotFound: the session no longer exists
        """
        version = self._navigation.next_version()

        try:
            ack = await self.store.update_session_navigation(self.session_id, index, version=version)
        except StoreUnavailable as e:
            self._navigation.record_failure(version, e)
            logger.warning(f"Navigation to step {index} (v{version}) not saved for session {self.session_id}: {e}")
            raise SyncFailed(None, version, e) from e
        except Exception as e:
            self._navigation.record_failure(version, e)
            raise

        self._navigation.record_success(version, ack.updated_at or utcnow())
        logger.debug(f"Saved navigation index {index} v{version} for session {self.session_id}")
        return ack

    @property
    def status(self) -> SyncStatus:
        return SyncStatus.capture(self._steps, self._navigation)

    @property
    def has_unsynced_changes(self) -> bool:
        return not self.status.is_synced

    def step_state(self, step_id: str) -> Optional[WriteState]:
        state = self._steps.get(step_id)
        return None if state is None else replace(state)
