"""Error taxonomy for the wizard session engine.

Every error raised by the engine derives from WizardError so callers can
catch the whole family in one place. Store implementations raise
SessionNotFound, StoreUnavailable and AlreadyCompleted; the Sync Agent turns
StoreUnavailable into SyncFailed.
"""

from typing import Any, Optional


class WizardError(Exception):
    """Base class for all wizard engine errors."""

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            return f"[{self.context}] {self.message}"
        return self.message


class ParseFailure(WizardError):
    """A stored step payload is not valid structured data."""

    def __init__(self, step_id: str, reason: str):
        super().__init__(f"Unparseable payload for step '{step_id}': {reason}", context="hydrate")
        self.step_id = step_id
        self.reason = reason


class SyncFailed(WizardError):
    """A write to the response store did not complete.

    The edit is still held in memory; the next edit or an explicit retry
    sends it again.
    """

    def __init__(self, step_id: Optional[str], version: int, cause: Optional[BaseException] = None):
        target = f"step '{step_id}'" if step_id is not None else "navigation"
        super().__init__(f"Failed to persist {target} (version {version}): {cause}", context="sync")
        self.step_id = step_id
        self.version = version
        self.cause = cause

    @property
    def is_navigation(self) -> bool:
        return self.step_id is None


class AlreadyCompleted(WizardError):
    """Completion was requested for a session that is already completed."""

    def __init__(self, session_id: Any):
        super().__init__(f"Session {session_id} is already completed", context="complete")
        self.session_id = session_id


class SessionNotFound(WizardError):
    """The session id is unknown to the response store."""

    def __init__(self, session_id: Any):
        super().__init__(f"Session {session_id} not found", context="store")
        self.session_id = session_id


class StoreUnavailable(WizardError):
    """Transport-level failure talking to the response store."""

    def __init__(self, operation: str, original_error: Optional[BaseException] = None):
        detail = f": {original_error}" if original_error is not None else ""
        super().__init__(f"Response store unavailable during {operation}{detail}", context="store")
        self.operation = operation
        self.original_error = original_error


class UnknownField(WizardError):
    """A field key is not declared for the step in the catalog."""

    def __init__(self, step_id: str, field_key: str):
        super().__init__(f"Field '{field_key}' is not declared for step '{step_id}'", context="validation")
        self.step_id = step_id
        self.field_key = field_key


class UnknownStep(WizardError):
    """A step id is not part of the catalog."""

    def __init__(self, step_id: str):
        super().__init__(f"Unknown step '{step_id}'", context="validation")
        self.step_id = step_id


class InvalidFieldValue(WizardError):
    """A field value is not a scalar or a flat list of scalars."""

    def __init__(self, field_key: str, value: Any):
        super().__init__(
            f"Field '{field_key}' must be a scalar or a flat list of scalars, "
            f"got {type(value).__name__}",
            context="validation",
        )
        self.field_key = field_key
        self.value = value


class SessionReadOnly(WizardError):
    """The session is completed and no longer accepts edits or navigation."""

    def __init__(self, session_id: Any):
        super().__init__(f"Session {session_id} is completed and read-only", context="controller")
        self.session_id = session_id


class CompletionNotAllowed(WizardError):
    """Completion was requested before the last step was reached."""

    def __init__(self, current_index: int, last_index: int):
        super().__init__(
            f"Completion requires the last step ({last_index}); active step is {current_index}",
            context="complete",
        )
        self.current_index = current_index
        self.last_index = last_index


class UnsyncedChanges(WizardError):
    """Completion was requested while some edits have not reached the store."""

    def __init__(self, step_ids: list):
        super().__init__(
            f"Edits for steps {step_ids} have not been saved; retry before completing",
            context="complete",
        )
        self.step_ids = step_ids
