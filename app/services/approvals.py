"""
Approval workflow for credit-spending requests.

Requests at or below the auto-approve limit are reserved and settled on
submission. Larger requests keep their reservation held and wait in a queue
for a team lead or an admin; approval settles the hold, denial and
cancellation refund it.
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.errors import InvalidTransitionError, RequestNotFoundError
from app.core.logging import get_logger
from app.services.credit_ledger import CreditLedger, get_credit_ledger
from app.services.notification_bus import (
    Notification,
    NotificationBus,
    NotificationType,
    get_notification_bus,
)

logger = get_logger(__name__)


class RequestType(str, Enum):
    ANALYST_QA = "analyst_qa"
    ANALYST_CALL = "analyst_call"
    REPORT_UPGRADE = "report_upgrade"
    EXPERT_CONSULT = "expert_consult"
    EXPERT_DEEPDIVE = "expert_deepdive"
    BESPOKE_PROJECT = "bespoke_project"
    DEEP_RESEARCH = "deep_research"


class ApprovalLevel(str, Enum):
    AUTO = "auto"
    TEAM_LEAD = "team_lead"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FULFILLED = "fulfilled"


# Hours before an unanswered request escalates
ESCALATION_HOURS = {ApprovalLevel.TEAM_LEAD: 48, ApprovalLevel.ADMIN: 24}

REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.DRAFT: frozenset({RequestStatus.PENDING, RequestStatus.CANCELLED}),
    RequestStatus.PENDING: frozenset(
        {
            RequestStatus.APPROVED,
            RequestStatus.DENIED,
            RequestStatus.CANCELLED,
            RequestStatus.EXPIRED,
        }
    ),
    RequestStatus.APPROVED: frozenset({RequestStatus.FULFILLED, RequestStatus.CANCELLED}),
    RequestStatus.DENIED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.EXPIRED: frozenset(),
    RequestStatus.FULFILLED: frozenset(),
}


class ApprovalEvent(BaseModel):
    event_type: str
    from_status: RequestStatus | None = None
    to_status: RequestStatus
    performed_by: str
    reason: str | None = None
    created_at: str


class UpgradeRequest(BaseModel):
    id: str
    type: RequestType
    title: str
    requester_id: str
    estimated_credits: int
    approval_level: ApprovalLevel
    status: RequestStatus
    reservation_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    escalation_hours: int | None = None
    escalates_at: str | None = None
    created_at: str
    updated_at: str
    events: list[ApprovalEvent] = Field(default_factory=list)


class SubmitResult(BaseModel):
    id: str
    approval_level: ApprovalLevel
    status: RequestStatus
    reservation_id: str | None = None
    escalates_at: str | None = None


def get_approval_level(credits: int) -> ApprovalLevel:
    settings = get_settings()
    if credits <= settings.CREDITS_AUTO_APPROVE_LIMIT:
        return ApprovalLevel.AUTO
    if credits < settings.CREDITS_ADMIN_THRESHOLD:
        return ApprovalLevel.TEAM_LEAD
    return ApprovalLevel.ADMIN


class ApprovalService:
    def __init__(self, ledger: CreditLedger, bus: NotificationBus):
        self.ledger = ledger
        self.bus = bus
        self._requests: dict[str, UpgradeRequest] = {}

    def get_request(self, request_id: str) -> UpgradeRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(f"Request not found: {request_id}")
        return request

    def queue(self, level: ApprovalLevel | None = None) -> list[UpgradeRequest]:
        """Pending requests, oldest first."""
        return [
            r
            for r in self._requests.values()
            if r.status == RequestStatus.PENDING and (level is None or r.approval_level == level)
        ]

    def _move(
        self, request: UpgradeRequest, target: RequestStatus, actor: str, reason: str | None = None
    ) -> None:
        if target not in REQUEST_TRANSITIONS[request.status]:
            raise InvalidTransitionError(
                f"Request {request.id} cannot move from {request.status.value} to {target.value}"
            )
        now = datetime.now(timezone.utc).isoformat()
        request.events.append(
            ApprovalEvent(
                event_type=target.value,
                from_status=request.status,
                to_status=target,
                performed_by=actor,
                reason=reason,
                created_at=now,
            )
        )
        request.status = target
        request.updated_at = now

    def _notify(self, request: UpgradeRequest, type: NotificationType, title: str) -> None:
        self.bus.publish(
            Notification(
                type=type,
                user_id=request.requester_id,
                title=title,
                body=request.title,
                metadata={
                    "entity_type": "request",
                    "entity_id": request.id,
                    "request_id": request.id,
                    "approval_status": request.status.value,
                    "approval_level": request.approval_level.value,
                },
            )
        )

    async def submit_request(
        self,
        type: RequestType,
        title: str,
        estimated_credits: int,
        context: dict[str, Any] | None = None,
        requester_id: str = "anonymous",
    ) -> SubmitResult:
        """
        Submit a request for credits.

        Raises:
            InsufficientCreditsError: The requester cannot cover the estimate
        """
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        level = get_approval_level(estimated_credits)
        reservation_id = await self.ledger.reserve(
            requester_id, estimated_credits, idempotency_key=f"hold_{request_id}", description=title
        )

        now = datetime.now(timezone.utc)
        request = UpgradeRequest(
            id=request_id,
            type=type,
            title=title,
            requester_id=requester_id,
            estimated_credits=estimated_credits,
            approval_level=level,
            status=RequestStatus.PENDING,
            reservation_id=reservation_id,
            context=context or {},
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
        )
        self._requests[request_id] = request

        if level == ApprovalLevel.AUTO:
            await self.ledger.settle(reservation_id, estimated_credits)
            self._move(request, RequestStatus.APPROVED, "system", "auto_approved")
        else:
            request.escalation_hours = ESCALATION_HOURS[level]
            request.escalates_at = (now + timedelta(hours=request.escalation_hours)).isoformat()
            self._notify(request, NotificationType.APPROVAL_PENDING, "Request awaiting approval")

        logger.info(
            f"Submitted request {request_id} at level {level.value}",
            extra={"reservation_id": reservation_id},
        )
        return SubmitResult(
            id=request_id,
            approval_level=level,
            status=request.status,
            reservation_id=reservation_id,
            escalates_at=request.escalates_at,
        )

    async def approve(
        self, request_id: str, approver_id: str = "approver", reason: str | None = None
    ) -> UpgradeRequest:
        request = self.get_request(request_id)
        self._move(request, RequestStatus.APPROVED, approver_id, reason)
        if request.reservation_id:
            await self.ledger.settle(request.reservation_id, request.estimated_credits)
        self._notify(request, NotificationType.APPROVAL_DECIDED, "Request approved")
        return request

    async def deny(
        self, request_id: str, approver_id: str = "approver", reason: str | None = None
    ) -> UpgradeRequest:
        request = self.get_request(request_id)
        self._move(request, RequestStatus.DENIED, approver_id, reason)
        if request.reservation_id:
            await self.ledger.refund(request.reservation_id)
        self._notify(request, NotificationType.APPROVAL_DECIDED, "Request denied")
        return request

    async def cancel(self, request_id: str) -> UpgradeRequest:
        """Withdraw a request. Held credits are refunded; settled ones stay spent."""
        request = self.get_request(request_id)
        self._move(request, RequestStatus.CANCELLED, request.requester_id)
        if request.reservation_id:
            await self.ledger.refund(request.reservation_id)
        return request

    async def fulfill(self, request_id: str) -> UpgradeRequest:
        request = self.get_request(request_id)
        self._move(request, RequestStatus.FULFILLED, "system")
        return request

    async def expire(self, request_id: str) -> UpgradeRequest:
        """Time out a pending request and return its held credits."""
        request = self.get_request(request_id)
        self._move(request, RequestStatus.EXPIRED, "system", "timed_out")
        if request.reservation_id:
            await self.ledger.refund(request.reservation_id)
        self._notify(request, NotificationType.APPROVAL_DECIDED, "Request expired")
        return request


@lru_cache(maxsize=1)
def get_approval_service() -> ApprovalService:
    """Process-wide approval service sharing the engine's ledger and bus (cached singleton)."""
    return ApprovalService(get_credit_ledger(), get_notification_bus())
