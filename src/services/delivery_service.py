"""Delivery Service - seller deliveries for an order.

A delivery is an immutable record of submitted work (an optional message and
an ordered list of attachment URIs). Submitting one moves the order to
DELIVERED:

    IN_PROGRESS        -> DELIVERED
    REVISION_REQUESTED -> IN_PROGRESS -> DELIVERED  (one transaction)

Delivering while a revision request is outstanding marks that revision
accepted, which is what counts against the package allowance.

Empty deliveries (no message, no attachments) are accepted.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from src.models import OrderDelivery, OrderStatus
from src.services import revision_service
from src.services.database import session_scope
from src.services.exceptions import InvalidStateError, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.notification_service import NotificationEmitter, NotificationOutbox
from src.services.order_state_service import (
    ActorRole,
    authorize,
    compare_and_set_status,
    get_order_or_raise,
    new_outbox,
    order_notification_data,
    service_operation,
)
from src.utils.constants import MAX_ATTACHMENTS, MAX_MESSAGE_LENGTH
from src.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)

DELIVERABLE_STATUSES = (OrderStatus.IN_PROGRESS, OrderStatus.REVISION_REQUESTED)


def submit_delivery(
    order_id: int,
    actor_user_id: int,
    message: Optional[str] = None,
    attachments: Iterable[str] = (),
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Record a delivery and move the order to DELIVERED.

    Args:
        order_id: Order being delivered
        actor_user_id: Must be the order's seller
        message: Optional note for the customer
        attachments: Attachment URIs, order preserved
        session: Optional database session
        notifier: Emitter for the customer notification

    Returns:
        Created delivery as dictionary

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the actor is not the seller
        InvalidStateError: If the order is not IN_PROGRESS or REVISION_REQUESTED
        InvalidTransitionError: If a concurrent change moved the order first
        ValidationError: If the message or attachments are malformed
    """
    outbox = new_outbox()
    with service_operation("submit_delivery", order_id=order_id, actor_user_id=actor_user_id):
        if session is not None:
            result = _submit_delivery_impl(order_id, actor_user_id, message, attachments, session, outbox)
        else:
            with session_scope() as session:
                result = _submit_delivery_impl(
                    order_id, actor_user_id, message, attachments, session, outbox
                )
    outbox.dispatch(notifier)
    return result


def _submit_delivery_impl(
    order_id: int,
    actor_user_id: int,
    message: Optional[str],
    attachments: Iterable[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    authorize(order, actor_user_id, "deliver", (ActorRole.SELLER,), session)

    if order.status not in DELIVERABLE_STATUSES:
        raise InvalidStateError(order.id, order.status, "submit delivery", DELIVERABLE_STATUSES)

    message, attachments = _validate_delivery(message, attachments)
    from_status = order.status

    if from_status == OrderStatus.REVISION_REQUESTED:
        compare_and_set_status(session, order, OrderStatus.REVISION_REQUESTED, OrderStatus.IN_PROGRESS)
    # Also covers a resume via start_revision_work before this delivery
    revision_service.accept_pending_revision(order.id, session)

    now = utc_now()
    delivery = OrderDelivery(
        order_id=order.id,
        message=message,
        attachments_data=json.dumps(attachments),
        delivered_at=now,
    )
    session.add(delivery)
    session.flush()

    compare_and_set_status(
        session, order, OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED, delivery_date=now
    )

    outbox.add(
        order.customer.user_id,
        "Work Delivered",
        f"The seller has delivered your order {order.order_number}",
        order_notification_data(order, delivery_id=delivery.id),
    )

    log_operation(
        logger,
        operation="submit_delivery",
        outcome="success",
        order_id=order.id,
        delivery_id=delivery.id,
        from_status=from_status.value,
        attachment_count=len(attachments),
    )
    return delivery.to_dict()


def _validate_delivery(message: Optional[str], attachments: Iterable[str]):
    errors = []
    if message is not None:
        message = message.strip() or None
    if message is not None and len(message) > MAX_MESSAGE_LENGTH:
        errors.append(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    if isinstance(attachments, str):
        attachments = [attachments]
    attachments = list(attachments or ())
    if len(attachments) > MAX_ATTACHMENTS:
        errors.append(f"At most {MAX_ATTACHMENTS} attachments are allowed")
    for uri in attachments:
        if not isinstance(uri, str) or not uri.strip():
            errors.append("Attachments must be non-empty URI strings")
            break

    if errors:
        raise ValidationError(errors)
    return message, [uri.strip() for uri in attachments]


def list_deliveries(order_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """Deliveries for an order, newest first.

    Raises:
        NotFoundError: If the order does not exist
    """
    if session is not None:
        return _list_deliveries_impl(order_id, session)
    with session_scope() as session:
        return _list_deliveries_impl(order_id, session)


def _list_deliveries_impl(order_id: int, session: Session) -> List[Dict[str, Any]]:
    get_order_or_raise(order_id, session)
    deliveries = (
        session.query(OrderDelivery)
        .filter(OrderDelivery.order_id == order_id)
        .order_by(OrderDelivery.delivered_at.desc(), OrderDelivery.id.desc())
        .all()
    )
    return [d.to_dict() for d in deliveries]
