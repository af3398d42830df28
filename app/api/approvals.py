"""Approval API: credit-spending requests and the approver queue."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from app.core.auth_middleware import VisitorContext, require_visitor
from app.core.errors import InsufficientCreditsError, InvalidTransitionError, RequestNotFoundError
from app.core.logging import get_logger
from app.services.approvals import (
    ApprovalLevel,
    RequestType,
    SubmitResult,
    UpgradeRequest,
    get_approval_service,
)

logger = get_logger(__name__)

router = APIRouter()


class SubmitRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: RequestType
    title: str = Field(..., min_length=1)
    estimated_credits: int = Field(..., alias="estimatedCredits", ge=0)
    context: dict[str, Any] = Field(default_factory=dict)


class DecisionBody(BaseModel):
    reason: str | None = None


@router.post("", response_model=SubmitResult)
async def submit_request(
    body: SubmitRequestBody,
    visitor: VisitorContext = Depends(require_visitor),
) -> SubmitResult:
    """Submit a request. Small requests are approved on the spot."""
    try:
        return await get_approval_service().submit_request(
            body.type,
            body.title,
            body.estimated_credits,
            context=body.context,
            requester_id=visitor.user_id,
        )
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=402, detail=e.message) from e
    except Exception as e:
        logger.exception("Failed to submit approval request")
        raise HTTPException(status_code=500, detail="Failed to submit request") from e


@router.get("/queue", response_model=list[UpgradeRequest])
async def get_queue(level: ApprovalLevel | None = None) -> list[UpgradeRequest]:
    """Pending requests, oldest first."""
    return get_approval_service().queue(level)


@router.get("/{request_id}", response_model=UpgradeRequest)
async def get_request(request_id: str) -> UpgradeRequest:
    try:
        return get_approval_service().get_request(request_id)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail="Request not found") from e


async def _decide(action: str, request_id: str, *args) -> UpgradeRequest:
    service = get_approval_service()
    try:
        return await getattr(service, action)(request_id, *args)
    except RequestNotFoundError as e:
        raise HTTPException(status_code=404, detail="Request not found") from e
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message) from e
    except Exception as e:
        logger.exception(f"Failed to {action} request {request_id}")
        raise HTTPException(status_code=500, detail=f"Failed to {action} request") from e


@router.post("/{request_id}/approve", response_model=UpgradeRequest)
async def approve_request(
    request_id: str,
    body: DecisionBody | None = None,
    visitor: VisitorContext = Depends(require_visitor),
) -> UpgradeRequest:
    return await _decide("approve", request_id, visitor.user_id, body.reason if body else None)


@router.post("/{request_id}/deny", response_model=UpgradeRequest)
async def deny_request(
    request_id: str,
    body: DecisionBody | None = None,
    visitor: VisitorContext = Depends(require_visitor),
) -> UpgradeRequest:
    return await _decide("deny", request_id, visitor.user_id, body.reason if body else None)


@router.post(
    "/{request_id}/cancel",
    response_model=UpgradeRequest,
    dependencies=[Depends(require_visitor)],
)
async def cancel_request(request_id: str) -> UpgradeRequest:
    return await _decide("cancel", request_id)
