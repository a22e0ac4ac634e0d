"""Wizard session synchronization engine.

Keeps a multi-step questionnaire's answers synchronized with a durable
session record so users can leave and resume at any point, and seals a
validated snapshot for report generation once the wizard is finished.
"""

from .completion import CompletionGate, CompletionResult
from .controller import WizardController
from .errors import (
    AlreadyCompleted,
    CompletionNotAllowed,
    InvalidFieldValue,
    ParseFailure,
    SessionNotFound,
    SessionReadOnly,
    StoreUnavailable,
    SyncFailed,
    UnknownField,
    UnknownStep,
    UnsyncedChanges,
    WizardError,
)
from .events import EventBus, WizardEvent, WizardEventType
from .models import (
    ReportHandle,
    Session,
    SessionStatus,
    StepResponse,
    StoreAck,
    SyncStatus,
    WorkingState,
)
from .report import ReportSnapshot, ReportStep, build_report_snapshot
from .step_catalog import (
    LIVING_CATALOG,
    LivingStep,
    StepCatalog,
    StepDefinition,
    StepIcon,
    get_living_catalog,
)
from .store import InMemoryResponseStore, ResponseStore, create_response_store
from .sync_agent import SyncAgent

__all__ = [
    # Engine
    "WizardController",
    "SyncAgent",
    "CompletionGate",
    "CompletionResult",
    # Catalog
    "StepCatalog",
    "StepDefinition",
    "StepIcon",
    "LivingStep",
    "LIVING_CATALOG",
    "get_living_catalog",
    # Model
    "Session",
    "SessionStatus",
    "StepResponse",
    "StoreAck",
    "ReportHandle",
    "SyncStatus",
    "WorkingState",
    "ReportSnapshot",
    "ReportStep",
    "build_report_snapshot",
    # Store
    "ResponseStore",
    "InMemoryResponseStore",
    "create_response_store",
    # Events
    "EventBus",
    "WizardEvent",
    "WizardEventType",
    # Errors
    "WizardError",
    "ParseFailure",
    "SyncFailed",
    "AlreadyCompleted",
    "SessionNotFound",
    "StoreUnavailable",
    "UnknownField",
    "UnknownStep",
    "InvalidFieldValue",
    "SessionReadOnly",
    "CompletionNotAllowed",
    "UnsyncedChanges",
]
