"""Tests for notification_service.py.

Notifications are best-effort: they are dispatched only after the
transaction commits and an emitter failure never fails the operation.
"""

import logging

import pytest

from src.models import OrderStatus
from src.services import completion_service, order_service
from src.services.exceptions import InvalidTransitionError
from src.services.notification_service import (
    CallbackNotificationEmitter,
    LoggingNotificationEmitter,
    Notification,
    NotificationOutbox,
    RecordingNotificationEmitter,
    resolve_notifier,
)


def _failing_callback(notification):
    raise RuntimeError("push gateway unavailable")


class TestEmitters:
    def test_recording_emitter(self):
        emitter = RecordingNotificationEmitter()

        assert emitter.emit(5, "Hello", "Body", {"order_id": 1}) is True

        assert emitter.notifications == [
            Notification(5, "Hello", "Body", {"order_id": 1}, "task")
        ]
        assert emitter.for_recipient(6) == []
        emitter.clear()
        assert emitter.notifications == []

    def test_failure_suppressed_and_logged(self, caplog):
        emitter = CallbackNotificationEmitter(_failing_callback)

        with caplog.at_level(logging.WARNING, logger="gig_orders.services"):
            accepted = emitter.emit(5, "Hello", "Body")

        assert accepted is False
        record = caplog.records[0]
        assert record.levelno == logging.WARNING
        assert record.outcome == "delivery_failed"
        assert record.error == "push gateway unavailable"

    def test_callback_receives_notification(self):
        received = []
        emitter = CallbackNotificationEmitter(received.append)

        emitter.emit(3, "Title", "Message", notification_type="order")

        assert received[0].recipient_user_id == 3
        assert received[0].notification_type == "order"

    def test_default_emitter(self):
        assert isinstance(resolve_notifier(None), LoggingNotificationEmitter)


class TestNotificationOutbox:
    def test_dispatch_sends_and_clears(self):
        outbox = NotificationOutbox()
        outbox.add(1, "A", "first")
        outbox.add(2, "B", "second")
        emitter = RecordingNotificationEmitter()

        assert outbox.dispatch(emitter) == 2

        assert [n.title for n in emitter.notifications] == ["A", "B"]
        assert len(outbox) == 0

    def test_dispatch_continues_after_failure(self):
        calls = []

        def flaky(notification):
            calls.append(notification.title)
            if notification.title == "A":
                raise RuntimeError("boom")

        outbox = NotificationOutbox()
        outbox.add(1, "A", "first")
        outbox.add(2, "B", "second")

        assert outbox.dispatch(CallbackNotificationEmitter(flaky)) == 1
        assert calls == ["A", "B"]


class TestServiceNotifications:
    """Order operations and their notifications."""

    def test_new_order_notifies_seller(self, marketplace, notifier):
        m = marketplace

        order = order_service.create_order(
            m.customer_user_id, m.gig_id, m.basic_package_id, notifier=notifier
        )

        assert len(notifier.notifications) == 1
        notification = notifier.notifications[0]
        assert notification.recipient_user_id == m.seller_user_id
        assert notification.title == "New Order Received!"
        assert notification.data["order_id"] == order["id"]
        assert notification.data["order_number"] == order["order_number"]

    def test_failing_emitter_does_not_fail_operation(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory(OrderStatus.DELIVERED)

        order = completion_service.complete_order(
            order_id, m.customer_user_id, notifier=CallbackNotificationEmitter(_failing_callback)
        )

        assert order["status"] == "completed"
        assert order_service.get_order(order_id)["status"] == "completed"

    def test_rejected_operation_sends_nothing(self, marketplace, order_factory, notifier):
        m = marketplace
        order_id = order_factory()

        with pytest.raises(InvalidTransitionError):
            completion_service.complete_order(order_id, m.customer_user_id, notifier=notifier)

        assert notifier.notifications == []
