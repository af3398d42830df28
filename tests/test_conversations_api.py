"""Tests for conversation and message API endpoints."""

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.conversation_store import get_conversation_store

CSRF = {"x-csrf-token": "tok"}


@pytest.fixture
def client():
    get_conversation_store.cache_clear()
    client = TestClient(app)
    client.cookies.set("abi_csrf", "tok")
    yield client
    get_conversation_store.cache_clear()


def _create(client, **body):
    response = client.post("/api/conversations", json=body, headers=CSRF)
    assert response.status_code == 200
    return response.json()


def test_create_requires_csrf(client):
    response = client.post("/api/conversations", json={"title": "x"})

    assert response.status_code == 403
    assert response.json()["detail"] == "CSRF token missing or invalid"


def test_create_rejects_mismatched_csrf(client):
    response = client.post(
        "/api/conversations", json={"title": "x"}, headers={"x-csrf-token": "other"}
    )
    assert response.status_code == 403


def test_create_and_get(client):
    created = _create(client, title="Supplier review", visitorId="visitor-9")

    assert created["title"] == "Supplier review"
    assert created["category"] == "general"
    assert created["visitorId"] == "visitor-9"
    assert created["createdAt"]

    fetched = client.get(f"/api/conversations/{created['id']}")

    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]
    assert fetched.json()["messages"] == []


def test_create_falls_back_to_visitor_cookie(client):
    created = _create(client, title="Anonymous")
    assert created["visitorId"]


def test_get_unknown_conversation(client):
    response = client.get("/api/conversations/does-not-exist")

    assert response.status_code == 404
    assert response.json()["detail"] == "Conversation not found"


def test_patch_category(client):
    created = _create(client, title="Labels")

    response = client.patch(
        f"/api/conversations/{created['id']}", json={"category": "research"}, headers=CSRF
    )

    assert response.status_code == 200
    assert response.json()["category"] == "research"


def test_patch_rejects_unknown_category(client):
    created = _create(client, title="Labels")

    response = client.patch(
        f"/api/conversations/{created['id']}", json={"category": "gossip"}, headers=CSRF
    )

    assert response.status_code == 422


def test_patch_unknown_conversation(client):
    response = client.patch(
        "/api/conversations/missing", json={"category": "risk"}, headers=CSRF
    )
    assert response.status_code == 404


def test_messages_in_insertion_order(client):
    created = _create(client, title="Thread")

    for role, content in [("user", "Hi"), ("assistant", "Hello!"), ("user", "Risk overview?")]:
        response = client.post(
            "/api/messages",
            json={"conversationId": created["id"], "role": role, "content": content},
            headers=CSRF,
        )
        assert response.status_code == 200
        assert response.json()["id"]

    messages = client.get(f"/api/conversations/{created['id']}").json()["messages"]

    assert [m["content"] for m in messages] == ["Hi", "Hello!", "Risk overview?"]
    assert messages[0]["conversationId"] == created["id"]


def test_assistant_first_is_rejected(client):
    created = _create(client, title="Thread")

    response = client.post(
        "/api/messages",
        json={"conversationId": created["id"], "role": "assistant", "content": "Hello!"},
        headers=CSRF,
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Assistant message requires a preceding user message"


def test_message_to_unknown_conversation(client):
    response = client.post(
        "/api/messages",
        json={"conversationId": "missing", "role": "user", "content": "Hi"},
        headers=CSRF,
    )
    assert response.status_code == 404
