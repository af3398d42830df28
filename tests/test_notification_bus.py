"""Tests for the in-process notification bus."""

from unittest.mock import patch

from app.services.notification_bus import Notification, NotificationBus, NotificationType


def _notification(type=NotificationType.RISK_ALERT):
    return Notification(
        type=type,
        user_id="u1",
        title="Acme Packaging Corp risk increased",
        body="Score moved from 72 to 85",
        metadata={"entity_type": "supplier", "entity_id": "sup-acme"},
    )


def test_delivers_in_subscription_order():
    bus = NotificationBus()
    calls = []
    bus.subscribe(None, lambda n: calls.append("first"))
    bus.subscribe(NotificationType.RISK_ALERT, lambda n: calls.append("second"))

    assert bus.publish(_notification()) == 2
    assert calls == ["first", "second"]


def test_type_filter():
    bus = NotificationBus()
    calls = []
    bus.subscribe(NotificationType.CREDITS_LOW, calls.append)

    assert bus.publish(_notification()) == 0
    assert calls == []


def test_failing_handler_is_isolated():
    bus = NotificationBus()
    calls = []

    def broken(notification):
        raise RuntimeError("handler crashed")

    bus.subscribe(None, broken)
    bus.subscribe(None, calls.append)

    assert bus.publish(_notification()) == 1
    assert len(calls) == 1


def test_unsubscribe():
    bus = NotificationBus()
    calls = []
    unsubscribe = bus.subscribe(None, calls.append)
    unsubscribe()

    bus.publish(_notification())
    assert calls == []


def test_persist_writes_row():
    bus = NotificationBus(persist=True)

    with patch("app.db.notifications.create_notification") as mock_create:
        bus.publish(_notification())

    mock_create.assert_called_once_with(
        user_id="u1",
        type="risk_alert",
        title="Acme Packaging Corp risk increased",
        description="Score moved from 72 to 85",
        entity_type="supplier",
        entity_id="sup-acme",
        metadata={"entity_type": "supplier", "entity_id": "sup-acme"},
    )


def test_persist_failure_does_not_reach_publisher():
    bus = NotificationBus(persist=True)
    calls = []
    bus.subscribe(None, calls.append)

    with patch("app.db.notifications.create_notification", side_effect=ConnectionError("down")):
        assert bus.publish(_notification()) == 1
    assert len(calls) == 1
