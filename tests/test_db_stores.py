"""Tests for Supabase-backed stores with a mocked query builder."""

from unittest.mock import MagicMock, call

import pytest

from diagnosis_engine.core.exceptions import AccessDeniedError, NotFoundError, StoreError
from diagnosis_engine.core.schemas_diagnosis import DimensionInsight, Session, TranscriptEntry
from diagnosis_engine.core.stages import Stage
from diagnosis_engine.db.knowledge import KnowledgeStore, to_pgvector
from diagnosis_engine.db.sessions import SessionStore, compute_total_score
from diagnosis_engine.db.transcript import TranscriptStore

SESSION_ROW = {
    "id": "sess-1",
    "user_id": "user-1",
    "status": "active",
    "current_stage": "talent",
    "data_strategy": {"score": 80},
    "data_structure": {"score": 60},
    "data_performance": {},
    "data_compensation": {"score": 71},
    "data_talent": {},
    "total_score": 0,
}


def _mock_supabase(execute_results=None):
    """Supabase mock with chained query builder.

    Args:
        execute_results: Optional list of return values for successive
            .execute() calls (uses side_effect).
    """
    sb = MagicMock()
    chain = MagicMock()
    if execute_results is not None:
        chain.execute.side_effect = execute_results
    else:
        chain.execute.return_value = MagicMock(data=[])
    chain.eq.return_value = chain
    chain.order.return_value = chain
    chain.limit.return_value = chain
    chain.select.return_value = chain
    chain.insert.return_value = chain
    chain.update.return_value = chain
    chain.delete.return_value = chain
    sb.table.return_value = chain
    sb.rpc.return_value = chain
    return sb, chain


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_get_session_not_found(self):
        sb, _ = _mock_supabase()

        with pytest.raises(NotFoundError):
            await SessionStore(sb).get_session("missing")

    @pytest.mark.asyncio
    async def test_get_session_owner_mismatch(self):
        sb, _ = _mock_supabase([MagicMock(data=[SESSION_ROW])])

        with pytest.raises(AccessDeniedError):
            await SessionStore(sb).get_session("sess-1", owner_id="someone-else")

    @pytest.mark.asyncio
    async def test_get_session_parses_empty_slots(self):
        sb, _ = _mock_supabase([MagicMock(data=[SESSION_ROW])])

        session = await SessionStore(sb).get_session("sess-1", owner_id="user-1")

        assert session.data_strategy.score == 80
        assert session.data_talent is None

    @pytest.mark.asyncio
    async def test_update_stage_is_conditional(self):
        sb, chain = _mock_supabase([MagicMock(data=[])])

        updated = await SessionStore(sb).update_stage("sess-1", expected="strategy", new=Stage.STRUCTURE)

        assert updated is False
        chain.eq.assert_has_calls([call("id", "sess-1"), call("current_stage", "strategy")])
        assert chain.update.call_args[0][0]["current_stage"] == "structure"

    @pytest.mark.asyncio
    async def test_replace_insight_writes_mapped_column(self):
        sb, chain = _mock_supabase([MagicMock(data=[SESSION_ROW])])

        await SessionStore(sb).replace_insight("sess-1", Stage.TALENT, DimensionInsight(score=55))

        payload = chain.update.call_args[0][0]
        assert payload["data_talent"]["score"] == 55
        assert payload["data_talent"]["tags"] == []

    @pytest.mark.asyncio
    async def test_replace_insight_on_deleted_session(self):
        sb, _ = _mock_supabase([MagicMock(data=[])])

        with pytest.raises(NotFoundError):
            await SessionStore(sb).replace_insight("gone", Stage.TALENT, DimensionInsight(score=1))

    @pytest.mark.asyncio
    async def test_complete_session_sets_total_score(self):
        completed = {**SESSION_ROW, "status": "completed", "total_score": 42}
        sb, chain = _mock_supabase([MagicMock(data=[SESSION_ROW]), MagicMock(data=[completed])])

        session = await SessionStore(sb).complete_session("sess-1", "Final report")

        payload = chain.update.call_args[0][0]
        assert payload["status"] == "completed"
        assert payload["summary_report"] == "Final report"
        # (80 + 60 + 0 + 71 + 0) / 5 = 42.2
        assert payload["total_score"] == 42
        assert session.status == "completed"

    @pytest.mark.asyncio
    async def test_client_failure_becomes_store_error(self):
        sb, chain = _mock_supabase()
        chain.execute.side_effect = ConnectionError("network down")

        with pytest.raises(StoreError, match="network down"):
            await SessionStore(sb).list_sessions()


def test_compute_total_score_counts_missing_as_zero():
    session = Session.model_validate({"id": "s", "data_strategy": {"score": 100}})
    assert compute_total_score(session) == 20


class TestTranscriptStore:
    @pytest.mark.asyncio
    async def test_list_recent_returns_oldest_first(self):
        rows = [
            {"id": "3", "session_id": "s", "role": "user", "content": "newest"},
            {"id": "2", "session_id": "s", "role": "assistant", "content": "middle"},
        ]
        sb, chain = _mock_supabase([MagicMock(data=rows)])

        entries = await TranscriptStore(sb).list_recent("s", 2)

        assert [e.content for e in entries] == ["middle", "newest"]
        chain.order.assert_called_once_with("created_at", desc=True)
        chain.limit.assert_called_once_with(2)

    @pytest.mark.asyncio
    async def test_list_entries_ordered_by_creation(self):
        sb, chain = _mock_supabase([MagicMock(data=[])])

        await TranscriptStore(sb).list_entries("s")

        chain.order.assert_called_once_with("created_at", desc=False)

    @pytest.mark.asyncio
    async def test_append_inserts_metadata(self):
        row = {"id": "1", "session_id": "s", "role": "user", "content": "hi", "metadata": {"stage": "strategy"}}
        sb, chain = _mock_supabase([MagicMock(data=[row])])

        entry = await TranscriptStore(sb).append("s", "user", "hi", {"stage": "strategy"})

        assert entry.id == "1"
        sb.table.assert_called_with("chat_logs")
        assert chain.insert.call_args[0][0]["metadata"] == {"stage": "strategy"}

    @pytest.mark.asyncio
    async def test_append_many_single_insert_in_order(self):
        rows = [
            {"id": "1", "session_id": "s", "role": "user", "content": "first"},
            {"id": "2", "session_id": "s", "role": "assistant", "content": "second"},
        ]
        sb, chain = _mock_supabase([MagicMock(data=rows)])
        entries = [
            TranscriptEntry(session_id="s", role="user", content="first"),
            TranscriptEntry(session_id="s", role="assistant", content="second", metadata={"stage": "talent"}),
        ]

        stored = await TranscriptStore(sb).append_many(entries)

        assert [e.id for e in stored] == ["1", "2"]
        chain.insert.assert_called_once()
        records = chain.insert.call_args[0][0]
        assert [r["content"] for r in records] == ["first", "second"]
        assert records[1]["metadata"] == {"stage": "talent"}
        assert "id" not in records[0]

    @pytest.mark.asyncio
    async def test_append_many_empty_skips_insert(self):
        sb, chain = _mock_supabase()

        assert await TranscriptStore(sb).append_many([]) == []
        chain.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_missing_entry(self):
        sb, _ = _mock_supabase([MagicMock(data=[])])

        with pytest.raises(NotFoundError):
            await TranscriptStore(sb).delete_entry("missing")


class TestKnowledgeStore:
    @pytest.mark.asyncio
    async def test_match_documents_calls_rpc(self):
        rows = [{"id": "k1", "content": "c", "category": "talent", "source": "t.md", "similarity": 0.9}]
        sb, _ = _mock_supabase([MagicMock(data=rows)])

        chunks = await KnowledgeStore(sb).match_documents([0.5, 0.25], "talent", 0.7, 3)

        sb.rpc.assert_called_once_with(
            "match_documents",
            {
                "query_embedding": "[0.5,0.25]",
                "category_filter": "talent",
                "match_threshold": 0.7,
                "top_k": 3,
            },
        )
        assert chunks[0].similarity == 0.9

    def test_to_pgvector(self):
        assert to_pgvector([1.0, -0.5]) == "[1.0,-0.5]"
