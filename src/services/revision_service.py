"""Revision Service - customer revision requests and the package quota.

A revision request moves a DELIVERED order to REVISION_REQUESTED and leaves
one PENDING revision on the order. The revision becomes ACCEPTED when the
seller redelivers (or when the seller resolves it explicitly).

Quota:
    The order's package_revisions snapshot is the allowance (NULL means
    unlimited). A new request is refused with QuotaExceededError once the
    number of ACCEPTED revisions has reached the allowance. The count, the
    insert and the status change run in one transaction, so a request that
    loses the status race rolls its insert back.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from src.models import Order, OrderRevision, OrderStatus, RevisionStatus
from src.services.database import session_scope
from src.services.exceptions import (
    InvalidStateError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
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
from src.utils.constants import MAX_MESSAGE_LENGTH
from src.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


# =============================================================================
# Quota helpers
# =============================================================================


def count_accepted_revisions(order_id: int, session: Session) -> int:
    """Number of ACCEPTED revisions on an order.

    Transaction boundary: Inherits session from caller.
    """
    return (
        session.query(func.count(OrderRevision.id))
        .filter(
            OrderRevision.order_id == order_id,
            OrderRevision.status == RevisionStatus.ACCEPTED,
        )
        .scalar()
    )


def has_revision_allowance(order: Order, session: Session) -> bool:
    """True if another revision may be requested on ``order``."""
    if order.has_unlimited_revisions:
        return True
    return count_accepted_revisions(order.id, session) < order.package_revisions


def accept_pending_revision(order_id: int, session: Session) -> Optional[OrderRevision]:
    """Mark the order's outstanding revision ACCEPTED (on redelivery).

    Transaction boundary: Inherits session from caller.

    Returns:
        The accepted revision, or None if nothing was pending
    """
    revision = (
        session.query(OrderRevision)
        .filter(
            OrderRevision.order_id == order_id,
            OrderRevision.status == RevisionStatus.PENDING,
        )
        .order_by(OrderRevision.id.desc())
        .first()
    )
    if revision is None:
        return None
    revision.status = RevisionStatus.ACCEPTED
    revision.resolved_at = utc_now()
    session.flush()
    return revision


# =============================================================================
# Requests
# =============================================================================


def request_revision(
    order_id: int,
    actor_user_id: int,
    message: str,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Ask the seller for changes to a delivered order.

    Args:
        order_id: Delivered order
        actor_user_id: Must be the order's customer
        message: What should change (required, trimmed)
        session: Optional database session
        notifier: Emitter for the seller notification

    Returns:
        Created revision as dictionary (status "pending")

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the actor is not the customer
        InvalidStateError: If the order is not DELIVERED
        ValidationError: If the message is blank or too long
        QuotaExceededError: If the package's revision allowance is used up
    """
    outbox = new_outbox()
    with service_operation("request_revision", order_id=order_id, actor_user_id=actor_user_id):
        if session is not None:
            result = _request_revision_impl(order_id, actor_user_id, message, session, outbox)
        else:
            with session_scope() as session:
                result = _request_revision_impl(order_id, actor_user_id, message, session, outbox)
    outbox.dispatch(notifier)
    return result


def _request_revision_impl(
    order_id: int,
    actor_user_id: int,
    message: Optional[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    authorize(order, actor_user_id, "request a revision on", (ActorRole.CUSTOMER,), session)

    if order.status != OrderStatus.DELIVERED:
        raise InvalidStateError(order.id, order.status, "request revision", [OrderStatus.DELIVERED])

    message = (message or "").strip()
    if not message:
        raise ValidationError(["Revision message is required"])
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError([f"Revision message must be at most {MAX_MESSAGE_LENGTH} characters"])

    used = count_accepted_revisions(order.id, session)
    if not order.has_unlimited_revisions and used >= order.package_revisions:
        raise QuotaExceededError(order.id, allowance=order.package_revisions, used=used)

    revision = OrderRevision(
        order_id=order.id,
        requested_by_user_id=actor_user_id,
        message=message,
        status=RevisionStatus.PENDING,
    )
    session.add(revision)
    session.flush()

    compare_and_set_status(session, order, OrderStatus.DELIVERED, OrderStatus.REVISION_REQUESTED)

    outbox.add(
        order.seller.user_id,
        "Revision Requested",
        f"The customer requested changes to order {order.order_number}",
        order_notification_data(order, revision_id=revision.id),
    )

    log_operation(
        logger,
        operation="request_revision",
        outcome="success",
        order_id=order.id,
        revision_id=revision.id,
        revisions_used=used,
        revisions_allowed=order.package_revisions,
    )
    return revision.to_dict()


def resolve_revision(
    revision_id: int,
    actor_user_id: int,
    accepted: bool,
    session: Optional[Session] = None,
) -> Dict[str, Any]:
    """Seller marks a pending revision accepted or rejected.

    Bookkeeping only; the order status is not changed. Accepted revisions
    count against the package allowance.

    Raises:
        NotFoundError: If the revision does not exist
        AuthorizationError: If the actor is not the order's seller
        ValidationError: If the revision is no longer pending
    """
    with service_operation("resolve_revision", revision_id=revision_id, actor_user_id=actor_user_id):
        if session is not None:
            return _resolve_revision_impl(revision_id, actor_user_id, accepted, session)
        with session_scope() as session:
            return _resolve_revision_impl(revision_id, actor_user_id, accepted, session)


def _resolve_revision_impl(revision_id: int, actor_user_id: int, accepted: bool, session: Session):
    revision = session.query(OrderRevision).filter(OrderRevision.id == revision_id).first()
    if revision is None:
        raise NotFoundError("OrderRevision", revision_id)

    order = get_order_or_raise(revision.order_id, session)
    authorize(order, actor_user_id, "resolve a revision on", (ActorRole.SELLER,), session)

    if revision.status != RevisionStatus.PENDING:
        raise ValidationError([f"Revision {revision_id} is already {revision.status.value}"])

    revision.status = RevisionStatus.ACCEPTED if accepted else RevisionStatus.REJECTED
    revision.resolved_at = utc_now()
    session.flush()

    log_operation(
        logger,
        operation="resolve_revision",
        outcome=revision.status.value,
        order_id=order.id,
        revision_id=revision.id,
    )
    return revision.to_dict()


# =============================================================================
# Queries
# =============================================================================


def list_revisions(order_id: int, session: Optional[Session] = None) -> List[Dict[str, Any]]:
    """Revisions for an order, oldest first."""
    if session is not None:
        return _list_revisions_impl(order_id, session)
    with session_scope() as session:
        return _list_revisions_impl(order_id, session)


def _list_revisions_impl(order_id: int, session: Session) -> List[Dict[str, Any]]:
    get_order_or_raise(order_id, session)
    revisions = (
        session.query(OrderRevision)
        .filter(OrderRevision.order_id == order_id)
        .order_by(OrderRevision.id)
        .all()
    )
    return [r.to_dict() for r in revisions]


def get_revision_usage(order_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Allowance, accepted count and remaining revisions for an order.

    Returns:
        Dict with allowance (None = unlimited), used, remaining (None =
        unlimited) and pending (whether a request is outstanding)
    """
    if session is not None:
        return _get_revision_usage_impl(order_id, session)
    with session_scope() as session:
        return _get_revision_usage_impl(order_id, session)


def _get_revision_usage_impl(order_id: int, session: Session) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    used = count_accepted_revisions(order.id, session)
    pending = (
        session.query(OrderRevision.id)
        .filter(
            OrderRevision.order_id == order.id,
            OrderRevision.status == RevisionStatus.PENDING,
        )
        .first()
        is not None
    )
    allowance = order.package_revisions
    remaining = None if order.has_unlimited_revisions else max(allowance - used, 0)
    return {
        "order_id": order.id,
        "allowance": allowance,
        "used": used,
        "remaining": remaining,
        "pending": pending,
    }
