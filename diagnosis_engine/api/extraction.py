"""Insight extraction API endpoints."""

from fastapi import APIRouter, Depends

from diagnosis_engine.api.deps import Services, get_owner_id, get_services
from diagnosis_engine.core.schemas_diagnosis import ExtractionResult

router = APIRouter()


@router.post("/sessions/{session_id}/extraction", response_model=ExtractionResult)
async def run_extraction(
    session_id: str,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> ExtractionResult:
    """
    Extract the current stage's insight now and wait for the result.

    Always answers 200: failures are reported as ``success: false`` with the
    error code in ``reason``, and the stored insight is left as it was.
    """
    return await services.extraction.extract(session_id, owner_id=owner_id)
