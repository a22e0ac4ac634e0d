"""Wizard data model.

Session and StepResponse mirror the records kept by the response store.
WorkingState is the controller's in-memory merge of every step's field map
and is never persisted directly. Field values are restricted to scalars and
flat lists of scalars so every step payload round-trips through JSON.
"""

from __future__ import annotations

import copy
import json
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import InvalidFieldValue, ParseFailure
from .step_catalog import StepCatalog


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Lifecycle of a questionnaire session."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Session(BaseModel):
    """One user's questionnaire instance, owned by the response store."""

    model_config = ConfigDict(validate_assignment=True)

    id: int
    client_name: str
    project_name: Optional[str] = None
    current_step_index: int = 0
    status: SessionStatus = SessionStatus.IN_PROGRESS
    navigation_version: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED


class StepResponse(BaseModel):
    """Stored answers for one (session, step) pair; `data` is serialized JSON."""

    session_id: int
    step_id: str
    data: str
    is_completed: bool = True
    version: int = Field(default=0, ge=0)
    updated_at: Optional[datetime] = None


class StoreAck(BaseModel):
    """Acknowledgement of an upsert.

    `applied` is False when the store discarded the write because it already
    holds a newer version.
    """

    applied: bool = True
    version: int
    updated_at: datetime = Field(default_factory=utcnow)


class ReportHandle(BaseModel):
    """Reference to the report snapshot sealed at completion."""

    report_id: str
    session_id: int
    generated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# FIELD VALUES
# =============================================================================

_SCALAR_TYPES = (str, int, float, bool, type(None))


def _is_scalar(value: Any) -> bool:
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return isinstance(value, _SCALAR_TYPES)


def validate_field_value(field_key: str, value: Any) -> Any:
    """
    Check a field value and return a detached copy of it.

    Allowed values are str, int, float, bool, None, or a flat list (or
    tuple) of those. Tuples come back as lists.

    Raises:
        InvalidFieldValue: for nested objects, nested lists or non-finite floats
    """
    if _is_scalar(value):
        return value
    if isinstance(value, (list, tuple)):
        if all(_is_scalar(item) for item in value):
            return list(value)
    raise InvalidFieldValue(field_key, value)


def serialize_field_map(field_map: Mapping[str, Any]) -> str:
    """Serialize a step's field map to the JSON text the store keeps."""
    return json.dumps(dict(field_map), allow_nan=False)


def parse_step_payload(step_id: str, payload: Any) -> Dict[str, Any]:
    """
    Parse a stored step payload into a field map.

    Raises:
        ParseFailure: if the payload is not a JSON object of valid field values
    """
    if not isinstance(payload, (str, bytes, bytearray)):
        raise ParseFailure(step_id, f"expected JSON text, got {type(payload).__name__}")

    try:
        parsed = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseFailure(step_id, str(e)) from e

    if not isinstance(parsed, dict):
        raise ParseFailure(step_id, f"expected a JSON object, got {type(parsed).__name__}")

    result: Dict[str, Any] = {}
    for key, value in parsed.items():
        try:
            result[key] = validate_field_value(key, value)
        except InvalidFieldValue as e:
            raise ParseFailure(step_id, e.message) from e
    return result


# =============================================================================
# WORKING STATE
# =============================================================================

@dataclass
class WorkingState:
    """In-memory field maps for every step of the active session."""
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def empty(cls, catalog: StepCatalog) -> "WorkingState":
        return cls(steps={step_id: {} for step_id in catalog.step_ids})

    def get(self, step_id: str) -> Dict[str, Any]:
        return self.steps.setdefault(step_id, {})

    def set_value(self, step_id: str, field_key: str, value: Any) -> Dict[str, Any]:
        """Replace one key and return the step's updated field map."""
        step_map = self.get(step_id)
        step_map[field_key] = value
        return step_map

    def replace_step(self, step_id: str, field_map: Mapping[str, Any]) -> None:
        self.steps[step_id] = dict(field_map)

    def as_dict(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.steps)


# =============================================================================
# SYNC STATUS
# =============================================================================

@dataclass
class WriteState:
    """Delivery state of one key (a step's field map, or navigation).

    `resolved_version` is the newest version whose outcome is known; an
    outcome for an older version never overrides it.
    """
    issued_version: int = 0
    resolved_version: int = 0
    synced_version: int = 0
    pending: int = 0
    last_synced_at: Optional[datetime] = None
    failed_version: Optional[int] = None
    last_error: Optional[str] = None

    @property
    def is_synced(self) -> bool:
        return self.pending == 0 and self.failed_version is None

    def next_version(self) -> int:
        self.issued_version += 1
        self.pending += 1
        return self.issued_version

    def seed(self, version: int) -> None:
        self.issued_version = max(self.issued_version, version)
        self.resolved_version = max(self.resolved_version, version)
        self.synced_version = max(self.synced_version, version)

    def record_success(self, version: int, when: datetime) -> bool:
        """Record an acknowledged write; returns False if it was superseded."""
        self.pending = max(0, self.pending - 1)
        if version < self.resolved_version:
            return False
        self.resolved_version = version
        self.synced_version = version
        self.last_synced_at = when
        self.failed_version = None
        self.last_error = None
        return True

    def record_failure(self, version: int, error: BaseException) -> bool:
        """Record a failed write; returns False if a newer outcome is known."""
        self.pending = max(0, self.pending - 1)
        if version < self.resolved_version:
            return False
        self.resolved_version = version
        self.failed_version = version
        self.last_error = str(error)
        return True

    def clear_failure(self) -> bool:
        """Forget a recorded failure; returns True if there was one."""
        had_failure = self.failed_version is not None
        self.failed_version = None
        self.last_error = None
        return had_failure


@dataclass(frozen=True)
class SyncStatus:
    """Read-only snapshot of what has and has not reached the store."""
    steps: Dict[str, WriteState]
    navigation: WriteState

    @property
    def unsynced_steps(self) -> list:
        return [step_id for step_id, state in self.steps.items() if not state.is_synced]

    @property
    def failed_steps(self) -> list:
        return [step_id for step_id, state in self.steps.items() if state.failed_version is not None]

    @property
    def is_synced(self) -> bool:
        return self.navigation.is_synced and not self.unsynced_steps

    @property
    def last_synced_at(self) -> Optional[datetime]:
        stamps = [s.last_synced_at for s in self.steps.values() if s.last_synced_at]
        if self.navigation.last_synced_at:
            stamps.append(self.navigation.last_synced_at)
        return max(stamps) if stamps else None

    @classmethod
    def capture(cls, steps: Mapping[str, WriteState], navigation: WriteState) -> "SyncStatus":
        return cls(
            steps={step_id: replace(state) for step_id, state in steps.items()},
            navigation=replace(navigation),
        )


def responses_by_step(responses: Iterable[StepResponse]) -> Dict[str, StepResponse]:
    """Index responses by step id, keeping the highest version per step."""
    indexed: Dict[str, StepResponse] = {}
    for response in responses:
        current = indexed.get(response.step_id)
        if current is None or response.version >= current.version:
            indexed[response.step_id] = response
    return indexed
