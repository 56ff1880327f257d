"""Notification Service - best-effort counter-party notifications.

Order operations never talk to a delivery channel directly. They queue
notifications in a NotificationOutbox while the transaction runs and the
outbox is dispatched to a NotificationEmitter once the transaction has
committed, so a rolled-back transition never notifies anyone.

Emitters are ordinary objects constructed by the application and passed to
the service functions (``notifier=``). When none is passed a
LoggingNotificationEmitter is used.

Delivery is fire-and-forget: an emitter failure is logged at WARNING and
suppressed; it never fails the operation that produced the notification.

Example Usage:
    >>> emitter = RecordingNotificationEmitter()
    >>> order = order_service.create_order(user_id, gig_id, package_id, notifier=emitter)
    >>> emitter.notifications[0].title
    'New Order Received!'
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class Notification:
    """A message for one user about one order event."""

    recipient_user_id: int
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    notification_type: str = "task"


class NotificationEmitter:
    """Base emitter.

    Subclasses implement ``deliver()``; callers use ``emit()``, which never
    raises.
    """

    def deliver(self, notification: Notification) -> None:
        raise NotImplementedError

    def emit(
        self,
        recipient_user_id: int,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        notification_type: str = "task",
    ) -> bool:
        """Deliver one notification, logging and suppressing any failure.

        Returns:
            True if the emitter accepted the notification, False otherwise
        """
        notification = Notification(
            recipient_user_id=recipient_user_id,
            title=title,
            message=message,
            data=dict(data or {}),
            notification_type=notification_type,
        )
        return self.send(notification)

    def send(self, notification: Notification) -> bool:
        """Deliver an already-built notification; see emit()."""
        try:
            self.deliver(notification)
        except Exception as e:
            log_operation(
                logger,
                operation="emit_notification",
                outcome="delivery_failed",
                level=logging.WARNING,
                recipient_user_id=notification.recipient_user_id,
                title=notification.title,
                error=str(e),
            )
            return False
        return True


class LoggingNotificationEmitter(NotificationEmitter):
    """Writes notifications to the service log. Default when no emitter is given."""

    def deliver(self, notification: Notification) -> None:
        log_operation(
            logger,
            operation="emit_notification",
            outcome="logged",
            recipient_user_id=notification.recipient_user_id,
            title=notification.title,
            notification_data=notification.data,
        )


class RecordingNotificationEmitter(NotificationEmitter):
    """Keeps every notification in memory. Thread-safe."""

    def __init__(self):
        self._lock = threading.Lock()
        self._notifications: List[Notification] = []

    def deliver(self, notification: Notification) -> None:
        with self._lock:
            self._notifications.append(notification)

    @property
    def notifications(self) -> List[Notification]:
        with self._lock:
            return list(self._notifications)

    def for_recipient(self, user_id: int) -> List[Notification]:
        return [n for n in self.notifications if n.recipient_user_id == user_id]

    def clear(self) -> None:
        with self._lock:
            self._notifications.clear()


class CallbackNotificationEmitter(NotificationEmitter):
    """Hands each notification to a callable, e.g. a push or email adapter."""

    def __init__(self, callback: Callable[[Notification], None]):
        self._callback = callback

    def deliver(self, notification: Notification) -> None:
        self._callback(notification)


class NotificationOutbox:
    """Notifications queued during a transaction, dispatched after commit."""

    def __init__(self):
        self._pending: List[Notification] = []

    def add(
        self,
        recipient_user_id: int,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        notification_type: str = "task",
    ) -> None:
        self._pending.append(
            Notification(
                recipient_user_id=recipient_user_id,
                title=title,
                message=message,
                data=dict(data or {}),
                notification_type=notification_type,
            )
        )

    @property
    def pending(self) -> List[Notification]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def dispatch(self, notifier: Optional[NotificationEmitter] = None) -> int:
        """Send every queued notification; returns how many were accepted."""
        notifier = resolve_notifier(notifier)
        delivered = 0
        for notification in self._pending:
            if notifier.send(notification):
                delivered += 1
        self._pending.clear()
        return delivered


def resolve_notifier(notifier: Optional[NotificationEmitter]) -> NotificationEmitter:
    """Return the given emitter, or a LoggingNotificationEmitter when None."""
    if notifier is None:
        return LoggingNotificationEmitter()
    return notifier
