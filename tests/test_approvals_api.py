"""Tests for approval API endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.approvals import get_approval_service
from app.services.credit_ledger import get_credit_ledger
from app.services.notification_bus import get_notification_bus

CSRF = {"x-csrf-token": "tok"}


@pytest.fixture
def client():
    for cached in (get_approval_service, get_credit_ledger, get_notification_bus):
        cached.cache_clear()
    with TestClient(app) as client:
        client.cookies.set("abi_csrf", "tok")
        yield client
    for cached in (get_approval_service, get_credit_ledger, get_notification_bus):
        cached.cache_clear()


def _submit(client, credits: int, type: str = "analyst_call"):
    return client.post(
        "/api/approvals",
        json={"type": type, "title": "Analyst call on steel", "estimatedCredits": credits},
        headers=CSRF,
    )


def test_small_request_auto_approved(client):
    response = _submit(client, 200)

    assert response.status_code == 200
    data = response.json()
    assert data["approval_level"] == "auto"
    assert data["status"] == "approved"
    assert data["escalates_at"] is None


def test_large_request_waits_in_queue(client):
    submitted = _submit(client, 1200).json()

    assert submitted["approval_level"] == "team_lead"
    assert submitted["status"] == "pending"
    assert submitted["escalates_at"]

    queue = client.get("/api/approvals/queue").json()
    assert [r["id"] for r in queue] == [submitted["id"]]

    admin_queue = client.get("/api/approvals/queue?level=admin").json()
    assert admin_queue == []


def test_approve_then_approve_again_conflicts(client):
    submitted = _submit(client, 2000).json()
    assert submitted["approval_level"] == "admin"

    approved = client.post(
        f"/api/approvals/{submitted['id']}/approve", json={"reason": "ok"}, headers=CSRF
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    again = client.post(f"/api/approvals/{submitted['id']}/approve", headers=CSRF)
    assert again.status_code == 409


def test_deny(client):
    submitted = _submit(client, 800).json()

    response = client.post(f"/api/approvals/{submitted['id']}/deny", headers=CSRF)

    assert response.status_code == 200
    assert response.json()["status"] == "denied"
    assert response.json()["events"][-1]["to_status"] == "denied"


def test_cancel(client):
    submitted = _submit(client, 800).json()

    response = client.post(f"/api/approvals/{submitted['id']}/cancel", headers=CSRF)

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"


def test_insufficient_credits_is_402(client):
    response = _submit(client, 10_000)

    assert response.status_code == 402


def test_unknown_request_is_404(client):
    assert client.get("/api/approvals/req_missing").status_code == 404
    assert client.post("/api/approvals/req_missing/approve", headers=CSRF).status_code == 404


def test_submit_requires_csrf(client):
    response = client.post(
        "/api/approvals",
        json={"type": "analyst_call", "title": "x", "estimatedCredits": 100},
    )
    assert response.status_code == 403


def test_submit_validates_body(client):
    response = client.post(
        "/api/approvals",
        json={"type": "analyst_call", "title": "", "estimatedCredits": 100},
        headers=CSRF,
    )
    assert response.status_code == 422
