"""
Unit Tests for Session Store

Covers the in-memory fallback and the Supabase row mapping.
"""

import pytest

from conftest import tutor_reply_payload
from nursing_study_tutor.errors import PersistenceError, SessionNotFoundError
from nursing_study_tutor.session_store import SessionStore, reply_from_metadata


class TestInMemoryStore:

    @pytest.fixture
    def store(self):
        return SessionStore()

    @pytest.mark.asyncio
    async def test_create_and_list_newest_first(self, store):
        first = await store.create_session("user-1", "First question")
        second = await store.create_session("user-1", "Second question")
        await store.create_session("user-2", "Someone else")

        sessions = await store.list_sessions("user-1")

        assert [s.id for s in sessions] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_history_is_oldest_first(self, store):
        session = await store.create_session("user-1", "Renal")
        await store.append_message(session.id, "user-1", "What is GFR?", "user")
        await store.append_message(session.id, "user-1", "GFR is...", "tutor", tutor_reply_payload())

        history = await store.get_history(session.id)

        assert [m.role for m in history] == ["user", "tutor"]
        assert history[0].reply is None
        assert history[1].reply.topic_title == "Cardiac Cycle"

    @pytest.mark.asyncio
    async def test_metadata_is_copied(self, store):
        session = await store.create_session("user-1", "Renal")
        metadata = {"custom": "value"}

        message = await store.append_message(session.id, "user-1", "hi", "user", metadata)
        metadata["custom"] = "changed"

        assert message.metadata == {"custom": "value"}

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, store):
        session = await store.create_session("user-1", "Renal")

        with pytest.raises(ValueError):
            await store.append_message(session.id, "user-1", "hi", "system")

    @pytest.mark.asyncio
    async def test_unknown_session_write_raises_persistence_error(self, store):
        with pytest.raises(PersistenceError):
            await store.append_message("missing", "user-1", "hi", "user")

    @pytest.mark.asyncio
    async def test_unknown_session_read_is_not_found(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.get_history("missing")
        with pytest.raises(SessionNotFoundError):
            await store.get_session("missing")

    @pytest.mark.asyncio
    async def test_get_session_reports_owner(self, store):
        created = await store.create_session("user-1", "Renal")

        session = await store.get_session(created.id)

        assert session.user_id == "user-1"
        assert session.title == "Renal"


class TestSupabaseStore:

    @pytest.fixture
    def store(self, supabase):
        return SessionStore(supabase_client=supabase)

    @pytest.mark.asyncio
    async def test_create_session_maps_row(self, store, supabase):
        supabase.rows["chat_sessions"] = [
            {"id": 7, "user_id": "user-1", "title": "Shock", "created_at": "2026-01-05T10:00:00Z"}
        ]

        session = await store.create_session("user-1", "Shock")

        assert session.id == "7"
        assert session.created_at.year == 2026
        table, ops = supabase.executed[0]
        assert table == "chat_sessions"
        assert ops[0] == ("insert", ({"user_id": "user-1", "title": "Shock"},), {})

    @pytest.mark.asyncio
    async def test_append_writes_sender_and_metadata(self, store, supabase):
        supabase.rows["chat_messages"] = [{
            "id": "m1",
            "session_id": "s1",
            "message": "Answer",
            "sender": "ai",
            "metadata": tutor_reply_payload(),
            "timestamp": "2026-01-05T10:00:01Z",
        }]

        message = await store.append_message("s1", "user-1", "Answer", "tutor", tutor_reply_payload())

        row = supabase.executed[0][1][0][1][0]
        assert row["sender"] == "ai"
        assert row["metadata"]["topicTitle"] == "Cardiac Cycle"
        assert message.role == "tutor"
        assert message.reply is not None

    @pytest.mark.asyncio
    async def test_history_orders_by_timestamp(self, store, supabase):
        supabase.rows["chat_messages"] = [
            {"id": "m1", "session_id": "s1", "message": "Q", "sender": "user", "metadata": None},
        ]

        history = await store.get_history("s1")

        assert history[0].role == "user"
        assert history[0].metadata == {}
        ops = supabase.executed[0][1]
        assert ("order", ("timestamp",), {"desc": False}) in ops

    @pytest.mark.asyncio
    async def test_get_session_filters_by_id(self, store, supabase):
        supabase.rows["chat_sessions"] = [{"id": "s1", "user_id": "user-2", "title": "Shock"}]

        session = await store.get_session("s1")

        assert session.user_id == "user-2"
        assert ("eq", ("id", "s1"), {}) in supabase.executed[0][1]

    @pytest.mark.asyncio
    async def test_missing_session_row_is_not_found(self, store, supabase):
        supabase.rows["chat_sessions"] = []

        with pytest.raises(SessionNotFoundError):
            await store.get_session("s1")

    @pytest.mark.asyncio
    async def test_client_failure_becomes_persistence_error(self, store, supabase):
        supabase.error = RuntimeError("network down")

        with pytest.raises(PersistenceError):
            await store.list_sessions("user-1")

    @pytest.mark.asyncio
    async def test_empty_insert_result_is_an_error(self, store, supabase):
        supabase.rows["chat_sessions"] = []

        with pytest.raises(PersistenceError):
            await store.create_session("user-1", "Shock")


class TestReplyFromMetadata:

    def test_unparseable_metadata_gives_none(self):
        assert reply_from_metadata({"topicTitle": "Partial"}) is None

    def test_empty_metadata_gives_none(self):
        assert reply_from_metadata({}) is None

    def test_tutor_row_with_outdated_metadata_keeps_its_payload(self):
        metadata = {"topicTitle": "Old schema", "legacyField": [1, 2]}

        message = SessionStore.row_to_message(
            {"id": "m9", "session_id": "s1", "message": "Old answer", "sender": "ai", "metadata": metadata}
        )

        assert message.reply is None
        assert message.metadata == metadata
        assert message.has_payload
        assert not message.is_error
