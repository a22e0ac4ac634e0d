"""Tests for the in-memory response store."""

import pytest

from wizard.errors import AlreadyCompleted, SessionNotFound, StoreUnavailable
from wizard.models import SessionStatus
from wizard.store import InMemoryResponseStore, create_response_store


class TestSessions:
    """Session creation and loading."""

    @pytest.mark.asyncio
    async def test_create_and_load(self, memory_store):
        session = await memory_store.create_session("Ada", "Lake House")
        loaded, responses = await memory_store.load_session(session.id)

        assert loaded.client_name == "Ada"
        assert loaded.project_name == "Lake House"
        assert loaded.status == SessionStatus.IN_PROGRESS
        assert responses == []

    @pytest.mark.asyncio
    async def test_ids_increase(self, memory_store):
        first = await memory_store.create_session("A")
        second = await memory_store.create_session("B")
        assert second.id == first.id + 1

    @pytest.mark.asyncio
    async def test_load_missing_session(self, memory_store):
        with pytest.raises(SessionNotFound):
            await memory_store.load_session(404)

    @pytest.mark.asyncio
    async def test_loaded_copies_are_detached(self, memory_store):
        session = await memory_store.create_session("Ada")
        loaded, _ = await memory_store.load_session(session.id)
        loaded.current_step_index = 2

        again, _ = await memory_store.load_session(session.id)
        assert again.current_step_index == 0


class TestUpserts:
    """Step response upserts and version ordering."""

    @pytest.mark.asyncio
    async def test_upsert_replaces_whole_record(self, memory_store):
        session = await memory_store.create_session("Ada")
        await memory_store.upsert_step_response(session.id, "a", '{"x": "1", "y": "2"}', True, 1)
        await memory_store.upsert_step_response(session.id, "a", '{"x": "3"}', True, 2)

        _, responses = await memory_store.load_session(session.id)
        assert len(responses) == 1
        assert responses[0].data == '{"x": "3"}'
        assert responses[0].version == 2

    @pytest.mark.asyncio
    async def test_stale_write_is_discarded(self, memory_store):
        session = await memory_store.create_session("Ada")
        await memory_store.upsert_step_response(session.id, "a", '{"x": "new"}', True, 2)
        ack = await memory_store.upsert_step_response(session.id, "a", '{"x": "old"}', True, 1)

        assert ack.applied is False
        assert ack.version == 2
        _, responses = await memory_store.load_session(session.id)
        assert responses[0].data == '{"x": "new"}'

    @pytest.mark.asyncio
    async def test_upsert_unknown_session(self, memory_store):
        with pytest.raises(SessionNotFound):
            await memory_store.upsert_step_response(404, "a", "{}", True, 1)

    @pytest.mark.asyncio
    async def test_navigation_versioning(self, memory_store):
        session = await memory_store.create_session("Ada")
        assert (await memory_store.update_session_navigation(session.id, 2, 2)).applied
        stale = await memory_store.update_session_navigation(session.id, 1, 1)

        assert stale.applied is False
        loaded, _ = await memory_store.load_session(session.id)
        assert loaded.current_step_index == 2
        assert loaded.navigation_version == 2


class TestFailureInjection:
    """fail_next and the availability switch."""

    @pytest.mark.asyncio
    async def test_fail_next_counts_down(self, memory_store):
        session = await memory_store.create_session("Ada")
        memory_store.fail_next("upsert_step_response", count=2)

        for _ in range(2):
            with pytest.raises(StoreUnavailable):
                await memory_store.upsert_step_response(session.id, "a", "{}", True, 1)
        ack = await memory_store.upsert_step_response(session.id, "a", "{}", True, 1)
        assert ack.applied

    @pytest.mark.asyncio
    async def test_unavailable_store(self, memory_store):
        session = await memory_store.create_session("Ada")
        memory_store.available = False
        with pytest.raises(StoreUnavailable) as exc_info:
            await memory_store.load_session(session.id)
        assert exc_info.value.operation == "load_session"


class TestCompletion:
    """Completion and report sealing."""

    @pytest.mark.asyncio
    async def test_complete_seals_report(self, memory_store):
        session = await memory_store.create_session("Ada", "Lake House")
        await memory_store.upsert_step_response(session.id, "b", '{"name": "Ada", "stray": 1}', True, 1)

        handle = await memory_store.complete_session(session.id)
        report = await memory_store.get_report(session.id)

        assert handle.session_id == session.id
        assert report.client_name == "Ada"
        assert [step.step_id for step in report.steps] == ["a", "b", "c"]
        assert report.step("b").data == {"name": "Ada"}
        assert report.step("a").data == {}

        loaded, _ = await memory_store.load_session(session.id)
        assert loaded.status == SessionStatus.COMPLETED
        assert loaded.completed_at is not None

    @pytest.mark.asyncio
    async def test_second_complete_raises_already_completed(self, memory_store):
        session = await memory_store.create_session("Ada")
        await memory_store.complete_session(session.id)
        with pytest.raises(AlreadyCompleted):
            await memory_store.complete_session(session.id)

    @pytest.mark.asyncio
    async def test_report_missing_before_completion(self, memory_store):
        session = await memory_store.create_session("Ada")
        with pytest.raises(SessionNotFound):
            await memory_store.get_report(session.id)


class TestFactory:
    """create_response_store backend selection."""

    def test_memory_backend(self, abc_catalog):
        from config.settings import Settings

        store = create_response_store(Settings(store_backend="memory"), catalog=abc_catalog)
        assert isinstance(store, InMemoryResponseStore)
        assert store.catalog is abc_catalog

    def test_sql_backend(self, temp_db_settings, monkeypatch):
        from config.settings import Settings
        from database.wizard_store import SQLResponseStore

        monkeypatch.setenv("DB_SQLITE_PATH", str(temp_db_settings.sqlite_path))
        store = create_response_store(Settings(store_backend="sql"))
        assert isinstance(store, SQLResponseStore)
