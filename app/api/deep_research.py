"""API endpoints for deep research jobs: intake confirmation, streaming execution, cancel."""

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from app.core.auth_middleware import VisitorContext, require_visitor
from app.core.errors import JobNotFoundError
from app.core.logging import get_logger
from app.core.schemas_research import DeepResearchJob, StudyType
from app.services.engine import get_engine
from app.services.response_assembler import CanonicalResponse

logger = get_logger(__name__)

router = APIRouter()


class ConfirmIntakeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    answers: dict[str, Any] = Field(default_factory=dict)
    study_type: Optional[StudyType] = Field(default=None, alias="studyType")
    credits_available: int = Field(default=0, alias="creditsAvailable")


@router.post("/{job_id}/confirm", response_model=CanonicalResponse)
async def confirm_intake(
    job_id: str,
    request: ConfirmIntakeRequest,
    visitor: VisitorContext = Depends(require_visitor),
) -> CanonicalResponse:
    """
    Confirm intake answers and reserve credits.

    Returns:
        Canonical response carrying the job snapshot (phase ``processing`` on
        success, ``error`` when credits are insufficient)
    """
    return await get_engine().confirm_deep_research_intake(
        job_id,
        request.query,
        request.answers,
        study_type=request.study_type,
        credits_available=request.credits_available,
        user_id=visitor.user_id,
    )


@router.post("/{job_id}/execute", dependencies=[Depends(require_visitor)])
async def execute(job_id: str) -> StreamingResponse:
    """
    Run a confirmed job and stream its snapshots via SSE.

    Each event is a canonical response. The stream ends after the snapshot in
    phase ``complete`` or ``error``. Disconnecting cancels the job.
    """
    engine = get_engine()

    async def generate():
        try:
            async for response in engine.stream_deep_research(job_id):
                yield f"data: {json.dumps(response.model_dump(mode='json'))}\n\n"
        except Exception as e:
            logger.exception(f"Deep research stream failed for job {job_id}")
            yield f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/{job_id}/cancel", response_model=DeepResearchJob, dependencies=[Depends(require_visitor)])
async def cancel(job_id: str) -> DeepResearchJob:
    """
    Cancel a job and refund its held credits.

    Raises:
        HTTPException 404: If job not found
    """
    try:
        return await get_engine().cancel_deep_research(job_id)

    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except Exception:
        logger.exception(f"Failed to cancel deep research job {job_id}")
        raise HTTPException(status_code=500, detail="Failed to cancel job")
