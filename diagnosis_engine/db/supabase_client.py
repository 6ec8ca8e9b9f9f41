"""Supabase client construction and query execution helpers."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from supabase import Client, create_client

from diagnosis_engine.core.config import Settings
from diagnosis_engine.core.exceptions import DiagnosisError, StoreError
from diagnosis_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def create_supabase_client(settings: Settings) -> Client:
    """
    Create a Supabase client configured with the service role key.

    Built once at process start and passed to each store.

    Raises:
        RuntimeError: If client initialization fails
    """
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e


def utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


async def run_query(fn: Callable[[], T], action: str) -> T:
    """
    Run a blocking Supabase call in a worker thread.

    Domain errors raised by ``fn`` pass through; anything else is logged and
    wrapped in StoreError.

    Args:
        fn: Zero-argument callable performing the query
        action: Short description used in logs and error messages
    """
    try:
        return await asyncio.to_thread(fn)
    except DiagnosisError:
        raise
    except Exception as e:
        logger.error(f"Failed to {action}: {e}")
        raise StoreError(f"Failed to {action}: {e}") from e


def first_row(response: Any) -> dict[str, Any] | None:
    """Return the first row of a query response, or None."""
    rows = response.data or []
    return rows[0] if rows else None
