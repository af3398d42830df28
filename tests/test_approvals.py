"""Tests for the credit approval workflow."""

import pytest

from app.core.errors import InsufficientCreditsError, InvalidTransitionError, RequestNotFoundError
from app.services.approvals import (
    ApprovalLevel,
    ApprovalService,
    RequestStatus,
    RequestType,
    get_approval_level,
)
from app.services.credit_ledger import CreditLedger, ReservationStatus
from app.services.notification_bus import NotificationBus, NotificationType

USER = "requester-1"


@pytest.fixture
def ledger():
    return CreditLedger(default_balance=5000)


@pytest.fixture
def bus():
    return NotificationBus()


@pytest.fixture
def service(ledger, bus):
    return ApprovalService(ledger, bus)


@pytest.fixture
def received(bus):
    items = []
    bus.subscribe(None, items.append)
    return items


@pytest.mark.parametrize(
    "credits,level",
    [
        (0, ApprovalLevel.AUTO),
        (500, ApprovalLevel.AUTO),
        (501, ApprovalLevel.TEAM_LEAD),
        (1999, ApprovalLevel.TEAM_LEAD),
        (2000, ApprovalLevel.ADMIN),
    ],
)
def test_approval_level(credits, level):
    assert get_approval_level(credits) == level


@pytest.mark.asyncio
async def test_small_request_auto_approved_and_settled(service, ledger, received):
    result = await service.submit_request(
        RequestType.ANALYST_QA, "Ask an analyst", 200, requester_id=USER
    )

    assert result.approval_level == ApprovalLevel.AUTO
    assert result.status == RequestStatus.APPROVED
    assert result.escalates_at is None
    assert ledger.get_reservation(result.reservation_id).status == ReservationStatus.SETTLED
    assert ledger.balance(USER) == 4800
    assert received == []
    assert service.get_request(result.id).events[0].reason == "auto_approved"


@pytest.mark.asyncio
async def test_large_request_waits_for_team_lead(service, ledger, received):
    result = await service.submit_request(
        RequestType.EXPERT_CONSULT, "Expert consult", 1200, requester_id=USER
    )
    request = service.get_request(result.id)

    assert result.status == RequestStatus.PENDING
    assert request.escalation_hours == 48
    assert result.escalates_at is not None
    assert ledger.held(USER) == 1200
    assert service.queue(ApprovalLevel.TEAM_LEAD) == [request]
    assert service.queue(ApprovalLevel.ADMIN) == []
    assert [n.type for n in received] == [NotificationType.APPROVAL_PENDING]
    assert received[0].metadata["request_id"] == result.id


@pytest.mark.asyncio
async def test_admin_escalation_window(service):
    result = await service.submit_request(RequestType.BESPOKE_PROJECT, "Bespoke", 2500)
    assert service.get_request(result.id).escalation_hours == 24


@pytest.mark.asyncio
async def test_approve_settles_hold(service, ledger, received):
    result = await service.submit_request(RequestType.REPORT_UPGRADE, "Upgrade", 800, requester_id=USER)

    request = await service.approve(result.id, approver_id="lead-1", reason="ok")

    assert request.status == RequestStatus.APPROVED
    assert request.events[-1].performed_by == "lead-1"
    assert ledger.get_reservation(result.reservation_id).status == ReservationStatus.SETTLED
    assert ledger.balance(USER) == 4200
    assert received[-1].type == NotificationType.APPROVAL_DECIDED
    assert received[-1].title == "Request approved"
    assert service.queue() == []


@pytest.mark.asyncio
async def test_deny_refunds(service, ledger):
    result = await service.submit_request(RequestType.REPORT_UPGRADE, "Upgrade", 800, requester_id=USER)

    request = await service.deny(result.id, reason="not this quarter")

    assert request.status == RequestStatus.DENIED
    assert ledger.balance(USER) == 5000


@pytest.mark.asyncio
async def test_cancel_after_approval_keeps_spend(service, ledger):
    result = await service.submit_request(RequestType.ANALYST_CALL, "Call", 300, requester_id=USER)

    request = await service.cancel(result.id)

    assert request.status == RequestStatus.CANCELLED
    assert ledger.balance(USER) == 4700


@pytest.mark.asyncio
async def test_expire_refunds_and_notifies(service, ledger, received):
    result = await service.submit_request(RequestType.EXPERT_DEEPDIVE, "Deep dive", 1500, requester_id=USER)

    request = await service.expire(result.id)

    assert request.status == RequestStatus.EXPIRED
    assert request.events[-1].performed_by == "system"
    assert request.events[-1].reason == "timed_out"
    assert ledger.balance(USER) == 5000
    assert received[-1].title == "Request expired"


@pytest.mark.asyncio
async def test_fulfill_only_after_approval(service):
    result = await service.submit_request(RequestType.REPORT_UPGRADE, "Upgrade", 800)

    with pytest.raises(InvalidTransitionError):
        await service.fulfill(result.id)

    await service.approve(result.id)
    request = await service.fulfill(result.id)
    assert request.status == RequestStatus.FULFILLED


@pytest.mark.asyncio
async def test_terminal_requests_reject_decisions(service):
    result = await service.submit_request(RequestType.REPORT_UPGRADE, "Upgrade", 800)
    await service.deny(result.id)

    with pytest.raises(InvalidTransitionError):
        await service.approve(result.id)
    with pytest.raises(InvalidTransitionError):
        await service.expire(result.id)


@pytest.mark.asyncio
async def test_submit_without_credits(ledger, bus):
    ledger.open_account("broke", 100)
    service = ApprovalService(ledger, bus)

    with pytest.raises(InsufficientCreditsError):
        await service.submit_request(RequestType.EXPERT_CONSULT, "Consult", 1200, requester_id="broke")
    assert service.queue() == []


def test_unknown_request(service):
    with pytest.raises(RequestNotFoundError):
        service.get_request("req_missing")
