"""Stage advance API endpoint."""

from fastapi import APIRouter, Depends

from diagnosis_engine.api.deps import Services, get_owner_id, get_services, to_http_exception
from diagnosis_engine.core.exceptions import (
    DiagnosisError,
    NoNextStageError,
    StageConflictError,
)
from diagnosis_engine.core.schemas_diagnosis import AdvanceResult

router = APIRouter()


@router.post("/sessions/{session_id}/advance", response_model=AdvanceResult)
async def advance_stage(
    session_id: str,
    owner_id: str | None = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> AdvanceResult:
    """
    Move a session to the next stage.

    Illegal transitions come back as ``success: false``; a missing or
    foreign session is an HTTP error.
    """
    try:
        next_stage = await services.stages.advance(session_id, owner_id=owner_id)
    except (NoNextStageError, StageConflictError) as e:
        return AdvanceResult(success=False, error=str(e), reason=e.code)
    except DiagnosisError as e:
        raise to_http_exception(e) from e
    return AdvanceResult(success=True, next_stage=next_stage)
