"""Completion Service - completion, cancellation and escrow settlement.

Terminal moves of the order lifecycle and what happens to the escrowed money:

    complete_order      customer, DELIVERED -> COMPLETED; escrow RELEASED;
                        seller completed_tasks + 1
    cancel_order        customer or seller from any non-terminal status;
                        an admin may cancel with a reason
    cancel_order_admin  administrative cancellation, reason required,
                        audited, both parties notified
    refund_escrow       admin only, while escrow is HELD; escrow REFUNDED and
                        a non-terminal order is cancelled; audited

Escrow status is orthogonal to order status: a refunded order is a
CANCELLED order whose escrow_status is REFUNDED.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from src.models import AuditAction, EscrowStatus, Order, OrderStatus
from src.services import audit_service, party_service
from src.services.database import session_scope
from src.services.exceptions import AuthorizationError, InvalidStateError, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.notification_service import NotificationEmitter, NotificationOutbox
from src.services.order_state_service import (
    ActorRole,
    authorize,
    compare_and_set_status,
    counterparty_user_ids,
    get_order_or_raise,
    is_admin_user,
    new_outbox,
    order_notification_data,
    service_operation,
    validate_transition,
)
from src.utils.constants import ADMIN_CANCELLATION_PREFIX, MAX_REASON_LENGTH
from src.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


# =============================================================================
# Completion
# =============================================================================


def complete_order(
    order_id: int,
    actor_user_id: int,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Customer accepts the delivered work.

    Releases escrow to the seller and adds one to the seller's
    completed_tasks with an atomic SQL increment.

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the actor is not the customer
        InvalidTransitionError: If the order is not DELIVERED, including when
            a concurrent change got there first
    """
    outbox = new_outbox()
    with service_operation("complete_order", order_id=order_id, actor_user_id=actor_user_id):
        if session is not None:
            result = _complete_order_impl(order_id, actor_user_id, session, outbox)
        else:
            with session_scope() as session:
                result = _complete_order_impl(order_id, actor_user_id, session, outbox)
    outbox.dispatch(notifier)
    return result


def _complete_order_impl(
    order_id: int, actor_user_id: int, session: Session, outbox: NotificationOutbox
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    authorize(order, actor_user_id, "complete", (ActorRole.CUSTOMER,), session)
    validate_transition(order.id, order.status, OrderStatus.COMPLETED)

    now = utc_now()
    compare_and_set_status(
        session,
        order,
        OrderStatus.DELIVERED,
        OrderStatus.COMPLETED,
        completed_at=now,
        escrow_status=EscrowStatus.RELEASED,
        released_at=now,
    )
    party_service.increment_completed_tasks(order.seller_id, session)

    outbox.add(
        order.seller.user_id,
        "Order Completed",
        f"Order {order.order_number} was completed. {order.seller_earnings} has been released to you",
        order_notification_data(order, seller_earnings=str(order.seller_earnings)),
    )

    log_operation(
        logger,
        operation="complete_order",
        outcome="success",
        order_id=order.id,
        seller_id=order.seller_id,
        seller_earnings=str(order.seller_earnings),
    )
    return order.to_dict()


# =============================================================================
# Cancellation
# =============================================================================


def cancel_order(
    order_id: int,
    actor_user_id: int,
    reason: Optional[str] = None,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Cancel a non-terminal order.

    The customer or the seller may cancel with an optional reason. A user
    who is not a party but is an administrator takes the administrative
    path (see cancel_order_admin).

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the actor is neither a party nor an admin
        InvalidTransitionError: If the order is already COMPLETED or CANCELLED
        ValidationError: If an admin gives no reason, or the reason is too long
    """
    outbox = new_outbox()
    with service_operation("cancel_order", order_id=order_id, actor_user_id=actor_user_id):
        if session is not None:
            result = _cancel_order_impl(order_id, actor_user_id, reason, session, outbox)
        else:
            with session_scope() as session:
                result = _cancel_order_impl(order_id, actor_user_id, reason, session, outbox)
    outbox.dispatch(notifier)
    return result


def cancel_order_admin(
    order_id: int,
    admin_user_id: int,
    reason: str,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Administrative cancellation.

    The reason is mandatory and stored as "Admin Cancelled: <reason>"; an
    audit entry is written in the same transaction and both parties are
    notified.

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the user is not an administrator
        InvalidTransitionError: If the order is already terminal
        ValidationError: If the reason is empty
    """
    outbox = new_outbox()
    with service_operation("cancel_order_admin", order_id=order_id, actor_user_id=admin_user_id):
        if session is not None:
            result = _cancel_order_admin_impl(order_id, admin_user_id, reason, session, outbox)
        else:
            with session_scope() as session:
                result = _cancel_order_admin_impl(order_id, admin_user_id, reason, session, outbox)
    outbox.dispatch(notifier)
    return result


def _cancel_order_impl(
    order_id: int,
    actor_user_id: int,
    reason: Optional[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    role = authorize(
        order,
        actor_user_id,
        "cancel",
        (ActorRole.CUSTOMER, ActorRole.SELLER, ActorRole.ADMIN),
        session,
    )
    if role == ActorRole.ADMIN:
        return _admin_cancel(order, actor_user_id, reason, session, outbox)

    validate_transition(order.id, order.status, OrderStatus.CANCELLED)
    reason = _clean_reason(reason, required=False)
    from_status = order.status

    compare_and_set_status(
        session,
        order,
        from_status,
        OrderStatus.CANCELLED,
        cancelled_at=utc_now(),
        cancelled_by_user_id=actor_user_id,
        cancellation_reason=reason,
    )

    cancelled_by = "customer" if role == ActorRole.CUSTOMER else "seller"
    for recipient in counterparty_user_ids(order, role):
        outbox.add(
            recipient,
            "Order Cancelled",
            f"Order {order.order_number} was cancelled by the {cancelled_by}",
            order_notification_data(order, reason=reason),
        )

    log_operation(
        logger,
        operation="cancel_order",
        outcome="success",
        order_id=order.id,
        actor_user_id=actor_user_id,
        actor_role=role.value,
        from_status=from_status.value,
    )
    return order.to_dict()


def _cancel_order_admin_impl(
    order_id: int,
    admin_user_id: int,
    reason: Optional[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    _require_admin(order, admin_user_id, "cancel", session)
    return _admin_cancel(order, admin_user_id, reason, session, outbox)


def _admin_cancel(
    order: Order,
    admin_user_id: int,
    reason: Optional[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    validate_transition(order.id, order.status, OrderStatus.CANCELLED)
    reason = _clean_reason(reason, required=True)
    from_status = order.status

    compare_and_set_status(
        session,
        order,
        from_status,
        OrderStatus.CANCELLED,
        cancelled_at=utc_now(),
        cancelled_by_user_id=admin_user_id,
        cancellation_reason=f"{ADMIN_CANCELLATION_PREFIX}{reason}",
    )
    audit_service.record_order_action(
        session,
        AuditAction.ORDER_CANCELLED,
        order,
        admin_user_id,
        reason,
        from_status=from_status.value,
    )

    for recipient in counterparty_user_ids(order, ActorRole.ADMIN):
        outbox.add(
            recipient,
            "Order Cancelled",
            f"Order {order.order_number} was cancelled by an administrator: {reason}",
            order_notification_data(order, reason=reason),
        )

    log_operation(
        logger,
        operation="cancel_order_admin",
        outcome="success",
        order_id=order.id,
        actor_user_id=admin_user_id,
        from_status=from_status.value,
    )
    return order.to_dict()


# =============================================================================
# Escrow refund
# =============================================================================


def refund_escrow(
    order_id: int,
    admin_user_id: int,
    reason: str,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Return the escrowed total to the customer.

    Only valid while escrow_status is HELD. A non-terminal order is also
    cancelled through the ordinary cancellation transition. The refund is
    audited as (order, admin, timestamp, reason) and the customer is told.

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the user is not an administrator
        InvalidStateError: If the escrow was already released or refunded
        ValidationError: If the reason is empty
    """
    outbox = new_outbox()
    with service_operation("refund_escrow", order_id=order_id, actor_user_id=admin_user_id):
        if session is not None:
            result = _refund_escrow_impl(order_id, admin_user_id, reason, session, outbox)
        else:
            with session_scope() as session:
                result = _refund_escrow_impl(order_id, admin_user_id, reason, session, outbox)
    outbox.dispatch(notifier)
    return result


def _refund_escrow_impl(
    order_id: int,
    admin_user_id: int,
    reason: Optional[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    _require_admin(order, admin_user_id, "refund", session)

    if order.escrow_status != EscrowStatus.HELD:
        raise InvalidStateError(order.id, order.status, "refund escrow", [EscrowStatus.HELD])
    reason = _clean_reason(reason, required=True)

    now = utc_now()
    from_status = order.status
    cancelled = not order.is_terminal

    if cancelled:
        compare_and_set_status(
            session,
            order,
            from_status,
            OrderStatus.CANCELLED,
            cancelled_at=now,
            cancelled_by_user_id=admin_user_id,
            cancellation_reason=f"{ADMIN_CANCELLATION_PREFIX}{reason}",
        )
    _compare_and_set_escrow(session, order, EscrowStatus.HELD, EscrowStatus.REFUNDED, refunded_at=now)

    audit_service.record_order_action(
        session,
        AuditAction.ESCROW_REFUNDED,
        order,
        admin_user_id,
        reason,
        total_amount=str(order.total_amount),
        from_status=from_status.value,
        cancelled=cancelled,
    )

    outbox.add(
        order.customer.user_id,
        "Escrow Refunded",
        f"{order.total_amount} for order {order.order_number} has been refunded to you",
        order_notification_data(order, total_amount=str(order.total_amount)),
    )
    if cancelled:
        outbox.add(
            order.seller.user_id,
            "Order Cancelled",
            f"Order {order.order_number} was cancelled by an administrator: {reason}",
            order_notification_data(order, reason=reason),
        )

    log_operation(
        logger,
        operation="refund_escrow",
        outcome="success",
        order_id=order.id,
        actor_user_id=admin_user_id,
        total_amount=str(order.total_amount),
        cancelled=cancelled,
    )
    return order.to_dict()


def _compare_and_set_escrow(
    session: Session, order: Order, expected: EscrowStatus, target: EscrowStatus, **fields
) -> None:
    values = {Order.escrow_status: target, Order.updated_at: utc_now()}
    for name, value in fields.items():
        values[getattr(Order, name)] = value

    matched = (
        session.query(Order)
        .filter(Order.id == order.id, Order.escrow_status == expected)
        .update(values, synchronize_session=False)
    )
    session.refresh(order)
    if matched != 1:
        log_operation(
            logger,
            operation="compare_and_set_escrow",
            outcome="lost_race",
            level=logging.WARNING,
            order_id=order.id,
            escrow_status=order.escrow_status.value,
        )
        raise InvalidStateError(order.id, order.status, "refund escrow", [expected])


# =============================================================================
# Helpers
# =============================================================================


def _require_admin(order: Order, user_id: int, action: str, session: Session) -> None:
    if not is_admin_user(user_id, session):
        raise AuthorizationError(user_id, order.id, action, required_role=ActorRole.ADMIN.value)


def _clean_reason(reason: Optional[str], required: bool) -> Optional[str]:
    reason = (reason or "").strip()
    if not reason:
        if required:
            raise ValidationError(["A reason is required for administrative actions"])
        return None
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError([f"Reason must be at most {MAX_REASON_LENGTH} characters"])
    return reason
