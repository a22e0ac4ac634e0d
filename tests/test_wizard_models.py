"""Tests for the wizard data model and payload handling."""

import json
from datetime import datetime, timezone

import pytest

from wizard.errors import InvalidFieldValue, ParseFailure
from wizard.models import (
    Session,
    SessionStatus,
    StepResponse,
    SyncStatus,
    WorkingState,
    WriteState,
    parse_step_payload,
    responses_by_step,
    serialize_field_map,
    validate_field_value,
)


class TestSession:
    """Tests for the Session model."""

    def test_defaults(self):
        session = Session(id=1, client_name="Ada")
        assert session.status == SessionStatus.IN_PROGRESS
        assert session.current_step_index == 0
        assert session.navigation_version == 0
        assert session.completed_at is None
        assert not session.is_completed
        assert session.created_at.tzinfo is not None

    def test_status_assignment_is_validated(self):
        session = Session(id=1, client_name="Ada")
        session.status = "completed"
        assert session.status == SessionStatus.COMPLETED
        assert session.is_completed


class TestFieldValues:
    """Tests for validate_field_value."""

    @pytest.mark.parametrize("value", ["often", 3, 2.5, True, None, ["a", "b"], [1, 2], []])
    def test_accepts_scalars_and_flat_lists(self, value):
        assert validate_field_value("k", value) == value

    def test_tuple_becomes_list(self):
        assert validate_field_value("k", ("a", "b")) == ["a", "b"]

    def test_list_is_copied(self):
        original = ["a"]
        result = validate_field_value("k", original)
        original.append("b")
        assert result == ["a"]

    @pytest.mark.parametrize("value", [{"nested": 1}, [["a"]], [{"a": 1}], float("nan"), float("inf")])
    def test_rejects_nested_and_non_finite(self, value):
        with pytest.raises(InvalidFieldValue):
            validate_field_value("k", value)


class TestPayloads:
    """Tests for step payload serialization and parsing."""

    def test_serialize_is_json(self):
        text = serialize_field_map({"x": "1", "tags": ["a", "b"]})
        assert json.loads(text) == {"x": "1", "tags": ["a", "b"]}

    def test_parse_valid_payload(self):
        assert parse_step_payload("a", '{"x": "1", "ids": [1, 2]}') == {"x": "1", "ids": [1, 2]}

    def test_parse_empty_object(self):
        assert parse_step_payload("a", "{}") == {}

    @pytest.mark.parametrize("payload", ["{not json", "[1, 2]", '"text"', "null", '{"x": {"deep": 1}}', None])
    def test_parse_failures(self, payload):
        with pytest.raises(ParseFailure) as exc_info:
            parse_step_payload("a", payload)
        assert exc_info.value.step_id == "a"


class TestWorkingState:
    """Tests for WorkingState."""

    def test_empty_has_every_step(self, abc_catalog):
        state = WorkingState.empty(abc_catalog)
        assert state.as_dict() == {"a": {}, "b": {}, "c": {}}

    def test_set_value_replaces_key(self, abc_catalog):
        state = WorkingState.empty(abc_catalog)
        state.set_value("a", "tags", ["x"])
        step_map = state.set_value("a", "tags", ["y"])
        assert step_map == {"tags": ["y"]}

    def test_as_dict_is_deep_copy(self, abc_catalog):
        state = WorkingState.empty(abc_catalog)
        state.set_value("a", "tags", ["x"])
        copy = state.as_dict()
        copy["a"]["tags"].append("z")
        assert state.get("a") == {"tags": ["x"]}


class TestWriteState:
    """Tests for per-key delivery bookkeeping."""

    def test_versions_increase(self):
        state = WriteState()
        assert state.next_version() == 1
        assert state.next_version() == 2
        assert state.pending == 2

    def test_seed_continues_numbering(self):
        state = WriteState()
        state.seed(5)
        assert state.next_version() == 6

    def test_late_failure_does_not_override_newer_success(self):
        state = WriteState()
        v1 = state.next_version()
        v2 = state.next_version()
        now = datetime.now(timezone.utc)

        assert state.record_success(v2, now) is True
        assert state.record_failure(v1, RuntimeError("late")) is False
        assert state.failed_version is None
        assert state.is_synced

    def test_failure_then_success_clears_error(self):
        state = WriteState()
        v1 = state.next_version()
        state.record_failure(v1, RuntimeError("down"))
        assert state.failed_version == 1
        assert not state.is_synced

        v2 = state.next_version()
        state.record_success(v2, datetime.now(timezone.utc))
        assert state.failed_version is None
        assert state.last_error is None
        assert state.synced_version == 2


class TestSyncStatus:
    """Tests for SyncStatus snapshots."""

    def test_capture_is_detached(self):
        steps = {"a": WriteState()}
        navigation = WriteState()
        status = SyncStatus.capture(steps, navigation)
        steps["a"].next_version()
        assert status.steps["a"].pending == 0
        assert status.is_synced

    def test_failed_and_unsynced(self):
        failed = WriteState()
        failed.record_failure(failed.next_version(), RuntimeError("x"))
        pending = WriteState()
        pending.next_version()

        status = SyncStatus.capture({"a": failed, "b": pending, "c": WriteState()}, WriteState())
        assert status.failed_steps == ["a"]
        assert status.unsynced_steps == ["a", "b"]
        assert not status.is_synced


class TestResponsesByStep:
    """Tests for responses_by_step."""

    def test_keeps_highest_version(self):
        responses = [
            StepResponse(session_id=1, step_id="a", data='{"x": "new"}', version=3),
            StepResponse(session_id=1, step_id="a", data='{"x": "old"}', version=1),
            StepResponse(session_id=1, step_id="b", data="{}", version=1),
        ]
        indexed = responses_by_step(responses)
        assert indexed["a"].version == 3
        assert set(indexed) == {"a", "b"}
