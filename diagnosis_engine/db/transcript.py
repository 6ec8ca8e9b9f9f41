"""Chat transcript (``chat_logs``) database operations.

Entries are append-only and always read back in creation order.
"""

from typing import Any

from supabase import Client

from diagnosis_engine.core.exceptions import NotFoundError
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.schemas_diagnosis import TranscriptEntry, TranscriptRole
from diagnosis_engine.db.supabase_client import first_row, run_query

logger = get_logger(__name__)

CHAT_LOGS_TABLE = "chat_logs"


class TranscriptStore:
    """Append and read transcript entries."""

    def __init__(self, client: Client):
        self._client = client

    async def append(
        self,
        session_id: str,
        role: TranscriptRole,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> TranscriptEntry:
        """
        Append one entry to a session's transcript.

        Returns:
            Stored entry including its id and creation time
        """
        record = {
            "session_id": session_id,
            "role": role,
            "content": content,
            "metadata": metadata or {},
        }

        def _insert():
            response = self._client.table(CHAT_LOGS_TABLE).insert(record).execute()
            row = first_row(response)
            if not row:
                raise ValueError("No data returned from chat log insert")
            return row

        row = await run_query(_insert, f"append {role} message to session {session_id}")
        return TranscriptEntry.model_validate(row)

    async def append_many(self, entries: list[TranscriptEntry]) -> list[TranscriptEntry]:
        """Insert several entries in one call, preserving their order."""
        if not entries:
            return []

        records = [
            {
                "session_id": entry.session_id,
                "role": entry.role,
                "content": entry.content,
                "metadata": entry.metadata,
            }
            for entry in entries
        ]

        def _insert():
            return self._client.table(CHAT_LOGS_TABLE).insert(records).execute()

        response = await run_query(_insert, f"append {len(records)} messages")
        return [TranscriptEntry.model_validate(row) for row in response.data or []]

    async def list_entries(self, session_id: str) -> list[TranscriptEntry]:
        """Full transcript for a session, oldest first."""

        def _select():
            return (
                self._client.table(CHAT_LOGS_TABLE)
                .select("*")
                .eq("session_id", session_id)
                .order("created_at", desc=False)
                .execute()
            )

        response = await run_query(_select, f"list messages for session {session_id}")
        return [TranscriptEntry.model_validate(row) for row in response.data or []]

    async def list_recent(self, session_id: str, limit: int) -> list[TranscriptEntry]:
        """The ``limit`` most recent entries, returned oldest first."""
        if limit <= 0:
            return []

        def _select():
            return (
                self._client.table(CHAT_LOGS_TABLE)
                .select("*")
                .eq("session_id", session_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )

        response = await run_query(_select, f"list recent messages for session {session_id}")
        entries = [TranscriptEntry.model_validate(row) for row in response.data or []]
        entries.reverse()
        return entries

    async def get_entry(self, message_id: str) -> TranscriptEntry:
        """
        Load one entry.

        Raises:
            NotFoundError: Entry does not exist
        """

        def _select():
            response = (
                self._client.table(CHAT_LOGS_TABLE).select("*").eq("id", message_id).limit(1).execute()
            )
            return first_row(response)

        row = await run_query(_select, f"get message {message_id}")
        if not row:
            raise NotFoundError(f"Message {message_id} not found")
        return TranscriptEntry.model_validate(row)

    async def delete_entry(self, message_id: str) -> None:
        """
        Delete one entry.

        Raises:
            NotFoundError: Entry does not exist
        """

        def _delete():
            return self._client.table(CHAT_LOGS_TABLE).delete().eq("id", message_id).execute()

        response = await run_query(_delete, f"delete message {message_id}")
        if not response.data:
            raise NotFoundError(f"Message {message_id} not found")
