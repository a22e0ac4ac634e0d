"""Wizard Controller.

Single authoritative in-memory view of a session's answers and of the
step currently displayed. Edits and navigation change memory synchronously
and hand persistence to the SyncAgent as background asyncio tasks, so the
UI never waits on a save. A failed save never removes the edit from memory;
it is reported through sync_status and a SYNC_FAILED event and goes out
again with the next edit of that step or an explicit retry.

The controller is not thread-safe. Drive it from a single event loop.
"""

from __future__ import annotations

import asyncio
import copy
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Set

from config.settings import WizardSettings
from resilience import RetryConfig, RetryContext
from services.logging_config import get_logger

from .completion import CompletionGate, CompletionResult
from .errors import (
    CompletionNotAllowed,
    ParseFailure,
    SessionNotFound,
    SessionReadOnly,
    SyncFailed,
    UnsyncedChanges,
)
from .events import EventBus, EventHandler, WizardEvent, WizardEventType
from .models import (
    Session,
    StepResponse,
    StoreAck,
    SyncStatus,
    WorkingState,
    parse_step_payload,
    responses_by_step,
    validate_field_value,
)
from .step_catalog import StepCatalog, StepDefinition, get_living_catalog
from .store import ResponseStore
from .sync_agent import SyncAgent

logger = get_logger(__name__)


class WizardController:
    """
    Holds the working state of one session and drives navigation.

    Typical use:
        controller = await WizardController.open(store, session_id)
        controller.set_field("work", "workFromHome", "often")
        controller.next()
        ...
        result = await controller.complete()
    """

    def __init__(
        self,
        store: ResponseStore,
        catalog: Optional[StepCatalog] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[WizardSettings] = None,
    ):
        self.store = store
        self.catalog = catalog or get_living_catalog()
        self.events = event_bus or EventBus()
        self.settings = settings or WizardSettings()
        self.completion_gate = CompletionGate(store)

        self._session: Optional[Session] = None
        self._state = WorkingState.empty(self.catalog)
        self._current_index = 0
        self._sync_agent: Optional[SyncAgent] = None
        self._pending: Set[asyncio.Task] = set()
        self._parse_failures: Dict[str, ParseFailure] = {}
        self._log = logger

    @classmethod
    async def open(
        cls,
        store: ResponseStore,
        session_id: int,
        catalog: Optional[StepCatalog] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[WizardSettings] = None,
    ) -> "WizardController":
        """
        Load a session from the store and hydrate a controller for it.

        Raises:
            SessionNotFound: the session does not exist
            StoreUnavailable: the store could not be reached
        """
        session, responses = await store.load_session(session_id)
        controller = cls(store, catalog=catalog, event_bus=event_bus, settings=settings)
        controller.hydrate(session, responses)
        return controller

    # =========================================================================
    # HYDRATION
    # =========================================================================

    def hydrate(self, session: Session, responses: Iterable[StepResponse]) -> None:
        """
        Rebuild the working state from stored step responses.

        A payload that cannot be parsed is logged and leaves its step empty;
        it never aborts hydration of the other steps. The active step comes
        from the stored index, clamped into the catalog's range.
        """
        if self._pending:
            self._log.warning(f"Hydrating with {len(self._pending)} write(s) still in flight")

        log = get_logger(__name__, session_id=session.id)
        indexed = responses_by_step(r for r in responses if r.session_id == session.id)
        state = WorkingState.empty(self.catalog)
        failures: Dict[str, ParseFailure] = {}

        for step_id, response in indexed.items():
            step = self.catalog.find(step_id)
            if step is None:
                log.warning(f"Ignoring stored response for unknown step '{step_id}'")
                continue

            try:
                parsed = parse_step_payload(step_id, response.data)
            except ParseFailure as e:
                log.warning(f"Hydration left step '{step_id}' empty: {e}")
                failures[step_id] = e
                continue

            state.replace_step(step_id, self._known_fields(step, parsed, log))

        self._session = session.model_copy(deep=True)
        self._state = state
        self._parse_failures = failures
        self._current_index = self.catalog.clamp_index(session.current_step_index)
        self._session.current_step_index = self._current_index
        self._log = log

        if self._sync_agent is None or self._sync_agent.session_id != session.id:
            self._sync_agent = SyncAgent(self.store, session.id)
        else:
            discarded = self._sync_agent.discard_failures()
            if discarded:
                log.warning(
                    f"Hydration replaced unsaved edits for {discarded} with stored data",
                    extra={'extra_data': {'discarded': discarded}},
                )
        self._sync_agent.seed(indexed.values(), session.navigation_version)

        log.info(
            f"Hydrated session {session.id} at step {self._current_index}",
            extra={'extra_data': {
                'steps_loaded': len(indexed) - len(failures),
                'parse_failures': sorted(failures),
            }},
        )
        self._publish(WizardEventType.HYDRATED, payload={
            'current_step_index': self._current_index,
            'parse_failures': sorted(failures),
        })

    def _known_fields(self, step: StepDefinition, parsed: Mapping[str, Any], log) -> Dict[str, Any]:
        if not self.settings.strict_field_validation:
            return dict(parsed)
        unknown = [key for key in parsed if not step.has_field(key)]
        if unknown:
            log.warning(f"Dropping undeclared fields {unknown} from step '{step.id}'")
        return {key: value for key, value in parsed.items() if step.has_field(key)}

    # =========================================================================
    # EDITING
    # =========================================================================

    def set_field(self, step_id: str, field_key: str, value: Any) -> asyncio.Task:
        """
        Replace one field's value and schedule a save of the whole step.

        The change is visible through current_step_data()/step_data()
        immediately; the returned task resolves once the store answers.
        List values are replaced, never merged: pass the full new list.

        Raises:
            SessionReadOnly: the session is completed
            UnknownStep / UnknownField / InvalidFieldValue: rejected edit
        """
        self._ensure_writable()
        step = self.catalog.get(step_id)
        if self.settings.strict_field_validation:
            self.catalog.validate_field(step.id, field_key)
        value = validate_field_value(field_key, value)

        loop = asyncio.get_running_loop()
        field_map = copy.deepcopy(self._state.set_value(step.id, field_key, value))

        self._publish(WizardEventType.FIELD_CHANGED, step_id=step.id, payload={'field': field_key})
        return self._schedule(loop, self._persist_step(step.id, field_map))

    async def _persist_step(self, step_id: str, field_map: Dict[str, Any]) -> Optional[StoreAck]:
        try:
            ack = await self._agent.persist_step(step_id, field_map)
        except SyncFailed as e:
            self._publish(WizardEventType.SYNC_FAILED, step_id=step_id, payload={
                'version': e.version,
                'error': str(e.cause),
            })
            return None
        except SessionNotFound as e:
            self._log.error(f"Cannot save step '{step_id}': {e}")
            self._publish(WizardEventType.SYNC_FAILED, step_id=step_id, payload={
                'error': str(e),
                'fatal': True,
            })
            return None

        self._publish(WizardEventType.STEP_SYNCED, step_id=step_id, payload={
            'version': ack.version,
            'applied': ack.applied,
        })
        return ack

    async def save_step(self, step_id: str) -> StoreAck:
        """
        Save a step's current field map and wait for the store.

        Unlike set_field, failures are raised to the caller.

        Raises:
            SyncFailed: the store was unavailable
        """
        self._ensure_writable()
        step = self.catalog.get(step_id)
        ack = await self._agent.persist_step(step.id, copy.deepcopy(self._state.get(step.id)))
        self._publish(WizardEventType.STEP_SYNCED, step_id=step.id, payload={
            'version': ack.version,
            'applied': ack.applied,
        })
        return ack

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def go_to(self, index: int) -> Optional[asyncio.Task]:
        """
        Make another step active.

        Out-of-range indexes are clamped. Moving to the active step is a
        no-op and issues no write (returns None).
        """
        self._ensure_writable()
        target = self.catalog.clamp_index(index)
        if target == self._current_index:
            return None

        loop = asyncio.get_running_loop()
        previous = self._current_index
        self._current_index = target
        self._session.current_step_index = target

        self._log.debug(f"Navigating: step {previous} -> {target}")
        self._publish(WizardEventType.NAVIGATED, payload={'from_index': previous, 'to_index': target})
        return self._schedule(loop, self._persist_navigation(target))

    def back(self) -> Optional[asyncio.Task]:
        """Go to the previous step; no-op on the first step."""
        return self.go_to(self._current_index - 1)

    def next(self) -> Optional[asyncio.Task]:
        """Go to the next step; no-op on the last step."""
        return self.go_to(self._current_index + 1)

    async def _persist_navigation(self, index: int) -> Optional[StoreAck]:
        try:
            ack = await self._agent.persist_navigation(index)
        except SyncFailed as e:
            self._publish(WizardEventType.SYNC_FAILED, payload={
                'navigation': True,
                'version': e.version,
                'error': str(e.cause),
            })
            return None
        except SessionNotFound as e:
            self._log.error(f"Cannot save navigation: {e}")
            self._publish(WizardEventType.SYNC_FAILED, payload={
                'navigation': True,
                'error': str(e),
                'fatal': True,
            })
            return None

        self._publish(WizardEventType.NAVIGATION_SYNCED, payload={'index': index, 'version': ack.version})
        return ack

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def session(self) -> Session:
        return self._require_session().model_copy(deep=True)

    @property
    def current_step_index(self) -> int:
        return self._current_index

    @property
    def current_step(self) -> StepDefinition:
        return self.catalog.at(self._current_index)

    @property
    def step_count(self) -> int:
        return len(self.catalog)

    @property
    def is_first_step(self) -> bool:
        return self._current_index == 0

    @property
    def is_last_step(self) -> bool:
        return self._current_index == self.catalog.last_index

    @property
    def progress_percentage(self) -> float:
        """Share of the catalog reached, counting the active step."""
        return round((self._current_index + 1) / len(self.catalog) * 100.0, 1)

    @property
    def is_read_only(self) -> bool:
        return self._session is not None and self._session.is_completed

    @property
    def parse_failures(self) -> Dict[str, ParseFailure]:
        return dict(self._parse_failures)

    def current_step_data(self) -> Mapping[str, Any]:
        """Read-only view of the active step's field map."""
        return self.step_data(self.current_step.id)

    def step_data(self, step_id: str) -> Mapping[str, Any]:
        """Read-only view of a step's field map."""
        return MappingProxyType(self._state.get(self.catalog.get(step_id).id))

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Deep copy of the whole working state, keyed by step id."""
        return self._state.as_dict()

    def subscribe(
        self,
        handler: EventHandler,
        event_type: Optional[WizardEventType] = None,
    ) -> Callable[[], None]:
        """Observe wizard events; returns an unsubscribe callable."""
        return self.events.subscribe(handler, event_type)

    # =========================================================================
    # SYNC MANAGEMENT
    # =========================================================================

    @property
    def sync_status(self) -> SyncStatus:
        return self._agent.status

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def flush(self) -> None:
        """Wait until every write issued so far has been answered and observed."""
        while self._pending:
            tasks = list(self._pending)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    self._log.error(f"Background write raised unexpectedly: {result!r}")
        await self.events.drain()

    async def retry_unsynced(self, config: Optional[RetryConfig] = None) -> SyncStatus:
        """
        Re-send every step (and navigation) whose latest write failed.

        The current working state is sent, not the failed payload. Attempts
        back off according to the resilience settings.

        Raises:
            RetryExhausted: the store stayed unavailable
        """
        self._ensure_writable()
        await self.flush()
        config = config or RetryConfig.from_settings(retryable_exceptions=(SyncFailed,))
        status = self._agent.status

        for step_id in status.failed_steps:
            self._log.info(f"Retrying unsynced step '{step_id}'")
            ack = await self._with_retry(
                lambda step_id=step_id: self._agent.persist_step(
                    step_id, copy.deepcopy(self._state.get(step_id))
                ),
                config,
            )
            self._publish(WizardEventType.STEP_SYNCED, step_id=step_id, payload={
                'version': ack.version,
                'applied': ack.applied,
                'retried': True,
            })

        if status.navigation.failed_version is not None:
            index = self._current_index
            self._log.info(f"Retrying unsynced navigation to step {index}")
            ack = await self._with_retry(lambda: self._agent.persist_navigation(index), config)
            self._publish(WizardEventType.NAVIGATION_SYNCED, payload={
                'index': index,
                'version': ack.version,
                'retried': True,
            })

        await self.events.drain()
        return self._agent.status

    @staticmethod
    async def _with_retry(operation: Callable[[], Awaitable[StoreAck]], config: RetryConfig) -> StoreAck:
        async with RetryContext(config) as ctx:
            while True:
                try:
                    return await operation()
                except SyncFailed as e:
                    await ctx.handle_exception(e)

    # =========================================================================
    # COMPLETION
    # =========================================================================

    async def complete(self, force: bool = False) -> CompletionResult:
        """
        Complete the session and seal its report.

        Calling again after success returns already_completed=True without
        another write. Outstanding writes are awaited first; completion is
        refused while any step's latest write has failed.

        Args:
            force: Skip the "last step must be active" check

        Raises:
            CompletionNotAllowed: not on the last step (and not forced)
            UnsyncedChanges: some edits never reached the store
            StoreUnavailable: the completion write failed
        """
        session = self._require_session()
        if session.is_completed:
            return await self.completion_gate.complete(session)

        if self.settings.require_last_step_for_completion and not force and not self.is_last_step:
            raise CompletionNotAllowed(self._current_index, self.catalog.last_index)

        await self.flush()
        failed = self._agent.status.failed_steps
        if failed:
            raise UnsyncedChanges(failed)

        result = await self.completion_gate.complete(session)
        self._publish(WizardEventType.COMPLETED, payload={
            'already_completed': result.already_completed,
            'report_id': result.report.report_id if result.report else None,
        })
        await self.events.drain()
        return result

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @property
    def _agent(self) -> SyncAgent:
        if self._sync_agent is None:
            raise RuntimeError("WizardController used before hydrate()")
        return self._sync_agent

    def _require_session(self) -> Session:
        if self._session is None:
            raise RuntimeError("WizardController used before hydrate()")
        return self._session

    def _ensure_writable(self) -> None:
        session = self._require_session()
        if session.is_completed:
            raise SessionReadOnly(session.id)

    def _schedule(self, loop: asyncio.AbstractEventLoop, coro: Awaitable) -> asyncio.Task:
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def _publish(self, event_type: WizardEventType, step_id: Optional[str] = None, payload: Optional[dict] = None) -> None:
        self.events.publish(WizardEvent(
            event_type=event_type,
            session_id=self._session.id if self._session else None,
            step_id=step_id,
            payload=payload or {},
        ))
