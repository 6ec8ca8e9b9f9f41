"""Diagnosis session database operations."""

from typing import Any

from supabase import Client

from diagnosis_engine.core.exceptions import AccessDeniedError, NotFoundError
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.schemas_diagnosis import DimensionInsight, Session
from diagnosis_engine.core.stages import STAGES, Stage
from diagnosis_engine.db.supabase_client import first_row, run_query, utc_now_iso

logger = get_logger(__name__)

SESSIONS_TABLE = "diagnosis_sessions"
CHAT_LOGS_TABLE = "chat_logs"

# Stage → insight column. Columns are never derived from the stage string.
INSIGHT_COLUMNS: dict[Stage, str] = {
    Stage.STRATEGY: "data_strategy",
    Stage.STRUCTURE: "data_structure",
    Stage.PERFORMANCE: "data_performance",
    Stage.COMPENSATION: "data_compensation",
    Stage.TALENT: "data_talent",
}


def compute_total_score(session: Session) -> int:
    """Rounded mean of the five stage scores; stages without an insight count as 0."""
    scores = []
    for stage in STAGES:
        insight = session.insight_for(stage)
        scores.append(insight.score if insight else 0)
    return round(sum(scores) / len(STAGES))


class SessionStore:
    """CRUD over ``diagnosis_sessions``."""

    def __init__(self, client: Client):
        self._client = client

    async def create_session(self, user_id: str | None) -> Session:
        """
        Create a new session at the first stage with empty insight slots.

        Returns:
            Created session
        """
        record: dict[str, Any] = {
            "user_id": user_id,
            "status": "active",
            "current_stage": Stage.STRATEGY.value,
            "total_score": 0,
        }
        for column in INSIGHT_COLUMNS.values():
            record[column] = {}

        def _insert():
            response = self._client.table(SESSIONS_TABLE).insert(record).execute()
            row = first_row(response)
            if not row:
                raise ValueError("No data returned from create_session")
            return row

        row = await run_query(_insert, "create session")
        session = Session.model_validate(row)
        logger.info(f"Created session {session.id}", extra={"session_id": session.id})
        return session

    async def get_session(self, session_id: str, owner_id: str | None = None) -> Session:
        """
        Load a session by id.

        Args:
            session_id: Session UUID
            owner_id: When given, the session must belong to this user

        Raises:
            NotFoundError: Session does not exist
            AccessDeniedError: Session belongs to another user
        """

        def _select():
            response = (
                self._client.table(SESSIONS_TABLE)
                .select("*")
                .eq("id", session_id)
                .limit(1)
                .execute()
            )
            return first_row(response)

        row = await run_query(_select, f"get session {session_id}")
        if not row:
            raise NotFoundError(f"Session {session_id} not found")

        session = Session.model_validate(row)
        if owner_id is not None and session.user_id != owner_id:
            raise AccessDeniedError(f"Session {session_id} does not belong to caller")
        return session

    async def list_sessions(self, user_id: str | None = None, limit: int = 50) -> list[Session]:
        """List sessions newest first, optionally for one user."""

        def _select():
            query = self._client.table(SESSIONS_TABLE).select("*")
            if user_id is not None:
                query = query.eq("user_id", user_id)
            return query.order("created_at", desc=True).limit(limit).execute()

        response = await run_query(_select, "list sessions")
        return [Session.model_validate(row) for row in response.data or []]

    async def update_stage(self, session_id: str, expected: str, new: Stage) -> bool:
        """
        Move a session to ``new`` only if it is still at ``expected``.

        Returns:
            True if the row was updated, False if the stage had already changed
        """

        def _update():
            return (
                self._client.table(SESSIONS_TABLE)
                .update({"current_stage": new.value, "updated_at": utc_now_iso()})
                .eq("id", session_id)
                .eq("current_stage", expected)
                .execute()
            )

        response = await run_query(_update, f"update stage for session {session_id}")
        return bool(response.data)

    async def replace_insight(
        self, session_id: str, stage: Stage, insight: DimensionInsight
    ) -> None:
        """
        Replace the whole insight slot for ``stage``.

        Raises:
            NotFoundError: Session was deleted before the write
        """
        column = INSIGHT_COLUMNS[stage]

        def _update():
            return (
                self._client.table(SESSIONS_TABLE)
                .update({column: insight.model_dump(), "updated_at": utc_now_iso()})
                .eq("id", session_id)
                .execute()
            )

        response = await run_query(_update, f"store {stage.value} insight for session {session_id}")
        if not response.data:
            raise NotFoundError(f"Session {session_id} not found")

    async def complete_session(self, session_id: str, summary_report: str | None = None) -> Session:
        """
        Mark a session completed and fix its aggregate score.

        Raises:
            NotFoundError: Session does not exist
        """
        session = await self.get_session(session_id)
        total_score = compute_total_score(session)

        def _update():
            return (
                self._client.table(SESSIONS_TABLE)
                .update(
                    {
                        "status": "completed",
                        "summary_report": summary_report,
                        "total_score": total_score,
                        "updated_at": utc_now_iso(),
                    }
                )
                .eq("id", session_id)
                .execute()
            )

        response = await run_query(_update, f"complete session {session_id}")
        row = first_row(response)
        if not row:
            raise NotFoundError(f"Session {session_id} not found")

        logger.info(
            f"Completed session {session_id} with total score {total_score}",
            extra={"session_id": session_id},
        )
        return Session.model_validate(row)

    async def delete_session(self, session_id: str) -> None:
        """
        Delete a session and its transcript.

        Raises:
            NotFoundError: Session does not exist
        """

        def _delete():
            self._client.table(CHAT_LOGS_TABLE).delete().eq("session_id", session_id).execute()
            return self._client.table(SESSIONS_TABLE).delete().eq("id", session_id).execute()

        response = await run_query(_delete, f"delete session {session_id}")
        if not response.data:
            raise NotFoundError(f"Session {session_id} not found")
        logger.info(f"Deleted session {session_id}", extra={"session_id": session_id})
