"""
Wizard events and the in-process event bus.

The controller publishes an event for every change to its working state
and for every write outcome, so a UI can observe the session without
polling. Handlers run in publication order; a failing handler is logged
and does not stop delivery to the others.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .models import utcnow

logger = logging.getLogger(__name__)


class WizardEventType(str, Enum):
    """Types of wizard events."""
    HYDRATED = "wizard.hydrated"
    FIELD_CHANGED = "wizard.field_changed"
    STEP_SYNCED = "wizard.step_synced"
    SYNC_FAILED = "wizard.sync_failed"
    NAVIGATED = "wizard.navigated"
    NAVIGATION_SYNCED = "wizard.navigation_synced"
    COMPLETED = "wizard.completed"


class WizardEvent(BaseModel):
    """Immutable record of something that happened to a wizard session."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: WizardEventType
    session_id: Optional[int] = None
    step_id: Optional[str] = None
    occurred_at: datetime = Field(default_factory=utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict)


EventHandler = Callable[[WizardEvent], Any]


class EventBus:
    """
    Simple in-process event bus for wizard events.

    Supports both sync and async handlers, either for one event type or
    for every event.
    """

    def __init__(self):
        self._handlers: Dict[Optional[WizardEventType], List[EventHandler]] = {}
        self._async_handlers: Dict[Optional[WizardEventType], List[EventHandler]] = {}
        self._running: Set[asyncio.Task] = set()

    def subscribe(
        self,
        handler: EventHandler,
        event_type: Optional[WizardEventType] = None,
    ) -> Callable[[], None]:
        """
        Subscribe a handler.

        Coroutine functions are registered as async handlers and are
        scheduled on the running loop when an event is published.

        Args:
            handler: Callback receiving the event
            event_type: Only deliver this type; None means every event

        Returns:
            A callable that removes the subscription
        """
        registry = self._async_handlers if inspect.iscoroutinefunction(handler) else self._handlers
        registry.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type.value if event_type else 'all events'}")

        def unsubscribe() -> None:
            self.unsubscribe(handler, event_type)

        return unsubscribe

    def unsubscribe(
        self,
        handler: EventHandler,
        event_type: Optional[WizardEventType] = None,
    ) -> bool:
        """Remove a handler; returns True if it was registered."""
        for registry in (self._handlers, self._async_handlers):
            handlers = registry.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def publish(self, event: WizardEvent) -> None:
        """
        Publish an event.

        Sync handlers run immediately; async handlers are scheduled as
        tasks when a loop is running and skipped with a warning otherwise.
        Await drain() to know they have finished.
        """
        for handler in self._handlers.get(event.event_type, []) + self._handlers.get(None, []):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in wizard event handler: {e}", exc_info=True)

        async_handlers = self._async_handlers.get(event.event_type, []) + self._async_handlers.get(None, [])
        if not async_handlers:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop; dropped {len(async_handlers)} async handler(s) for {event.event_type.value}")
            return

        for handler in async_handlers:
            task = loop.create_task(self._safe_async_call(handler, event))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def drain(self) -> None:
        """Wait for every async handler scheduled so far, including ones they schedule."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def _safe_async_call(self, handler: EventHandler, event: WizardEvent) -> None:
        """Safely call an async handler."""
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Error in async wizard event handler: {e}", exc_info=True)

    def clear(self) -> None:
        """Clear all subscriptions."""
        self._handlers.clear()
        self._async_handlers.clear()
