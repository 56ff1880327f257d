"""Order State Service - transition table, authorization and status writes.

State machine:
    pending -> in_progress -> delivered -> completed
                    ^              |
                    |              v
                    +--- revision_requested
    {pending, in_progress, delivered, revision_requested} -> cancelled

Every order mutation goes through this module:
1. get_order_or_raise() loads the order
2. authorize_transition() resolves the actor and checks the role allowed
   for the target status
3. compare_and_set_status() validates the (from, to) pair against
   VALID_TRANSITIONS and writes the new status with
   ``UPDATE orders SET status=:to WHERE id=:id AND status=:from``.
   A concurrent writer that got there first leaves zero matched rows and
   the caller receives InvalidTransitionError carrying the winner's status.

Session Management Pattern:
- Helpers here always take a session; they are called from inside the
  public service functions' transaction.
"""

from contextlib import contextmanager
from enum import Enum
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models import Order, OrderStatus, User
from src.services.exceptions import (
    AuthorizationError,
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    ServiceError,
)
from src.services.logging_utils import get_service_logger, log_operation, log_rejection
from src.services.notification_service import NotificationOutbox
from src.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


class ActorRole(str, Enum):
    """Role an actor plays relative to one order."""

    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"


VALID_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(
        {OrderStatus.REVISION_REQUESTED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.REVISION_REQUESTED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Who may move an order INTO each status
TRANSITION_ROLES: Dict[OrderStatus, FrozenSet[ActorRole]] = {
    OrderStatus.IN_PROGRESS: frozenset({ActorRole.SELLER}),
    OrderStatus.DELIVERED: frozenset({ActorRole.SELLER}),
    OrderStatus.REVISION_REQUESTED: frozenset({ActorRole.CUSTOMER}),
    OrderStatus.COMPLETED: frozenset({ActorRole.CUSTOMER}),
    OrderStatus.CANCELLED: frozenset({ActorRole.CUSTOMER, ActorRole.SELLER, ActorRole.ADMIN}),
}

# Stable ordering for messages and capability lists
STATUS_ORDER: List[OrderStatus] = [
    OrderStatus.PENDING,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DELIVERED,
    OrderStatus.REVISION_REQUESTED,
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
]


def coerce_status(status) -> OrderStatus:
    """Accept an OrderStatus or its string value.

    Raises:
        ValueError: If the string is not a known status
    """
    if isinstance(status, OrderStatus):
        return status
    return OrderStatus(status)


def allowed_targets(status: OrderStatus) -> List[OrderStatus]:
    """Statuses reachable in one step from ``status``, in lifecycle order."""
    targets = VALID_TRANSITIONS.get(coerce_status(status), frozenset())
    return [s for s in STATUS_ORDER if s in targets]


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return coerce_status(to_status) in VALID_TRANSITIONS.get(coerce_status(from_status), frozenset())


def validate_transition(order_id: int, from_status: OrderStatus, to_status: OrderStatus) -> None:
    """Raise InvalidTransitionError unless (from, to) is in VALID_TRANSITIONS."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(order_id, from_status, to_status, allowed_targets(from_status))


def is_terminal(status: OrderStatus) -> bool:
    return not VALID_TRANSITIONS[coerce_status(status)]


def reachable_statuses(start: OrderStatus = OrderStatus.PENDING) -> FrozenSet[OrderStatus]:
    """Every status reachable from ``start`` through the transition table."""
    seen = {start}
    frontier = [start]
    while frontier:
        current = frontier.pop()
        for target in VALID_TRANSITIONS[current]:
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    return frozenset(seen)


# =============================================================================
# Lookup and authorization
# =============================================================================


def get_order_or_raise(order_id: int, session: Session) -> Order:
    """Get order by ID or raise NotFoundError.

    Transaction boundary: Inherits session from caller.
    """
    order = session.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def resolve_actor_role(order: Order, actor_user_id: int, session: Session) -> Optional[ActorRole]:
    """Role of ``actor_user_id`` on ``order``; parties win over admin rights.

    Returns:
        ActorRole, or None when the user is neither a party nor an admin
    """
    if actor_user_id is None:
        return None
    if order.customer.user_id == actor_user_id:
        return ActorRole.CUSTOMER
    if order.seller.user_id == actor_user_id:
        return ActorRole.SELLER
    if is_admin_user(actor_user_id, session):
        return ActorRole.ADMIN
    return None


def is_admin_user(user_id: int, session: Session) -> bool:
    user = session.query(User).filter(User.id == user_id).first()
    return bool(user is not None and user.is_admin)


def authorize(
    order: Order,
    actor_user_id: int,
    action: str,
    allowed_roles: Iterable[ActorRole],
    session: Session,
) -> ActorRole:
    """Resolve the actor and require one of ``allowed_roles``.

    Raises:
        AuthorizationError: If the actor is unknown or plays another role
    """
    allowed_roles = frozenset(allowed_roles)
    role = resolve_actor_role(order, actor_user_id, session)
    if role is None or role not in allowed_roles:
        required = None
        if len(allowed_roles) == 1:
            required = next(iter(allowed_roles)).value
        raise AuthorizationError(actor_user_id, order.id, action, required_role=required)
    return role


def authorize_transition(
    order: Order, actor_user_id: int, target: OrderStatus, action: str, session: Session
) -> ActorRole:
    """authorize() with the roles TRANSITION_ROLES allows for ``target``."""
    return authorize(order, actor_user_id, action, TRANSITION_ROLES[coerce_status(target)], session)


def counterparty_user_ids(order: Order, initiator: ActorRole) -> List[int]:
    """Users to notify about a change made by ``initiator``.

    Admin actions have no initiating party, so both parties are notified.
    """
    if initiator == ActorRole.CUSTOMER:
        return [order.seller.user_id]
    if initiator == ActorRole.SELLER:
        return [order.customer.user_id]
    return [order.customer.user_id, order.seller.user_id]


# =============================================================================
# Status write
# =============================================================================


def compare_and_set_status(
    session: Session,
    order: Order,
    expected: OrderStatus,
    target: OrderStatus,
    **fields,
) -> Order:
    """Move ``order`` from ``expected`` to ``target`` atomically.

    Transaction boundary: Inherits session from caller.

    Args:
        session: Database session
        order: Order being transitioned
        expected: Status the caller validated against
        target: New status
        **fields: Extra Order columns to write in the same UPDATE
            (completed_at, cancellation_reason, ...)

    Returns:
        The refreshed order

    Raises:
        InvalidTransitionError: If (expected, target) is not allowed, or if
            another transaction changed the status first
    """
    validate_transition(order.id, expected, target)

    values = {Order.status: target, Order.updated_at: utc_now()}
    for name, value in fields.items():
        values[getattr(Order, name)] = value

    matched = (
        session.query(Order)
        .filter(Order.id == order.id, Order.status == expected)
        .update(values, synchronize_session=False)
    )
    session.refresh(order)

    if matched != 1:
        log_operation(
            logger,
            operation="compare_and_set_status",
            outcome="lost_race",
            level=logging.WARNING,
            order_id=order.id,
            expected_status=expected.value,
            actual_status=order.status.value,
            target_status=target.value,
        )
        raise InvalidTransitionError(order.id, order.status, target, allowed_targets(order.status))

    return order


def order_notification_data(order: Order, **extra) -> dict:
    data = {"order_id": order.id, "order_number": order.order_number}
    data.update(extra)
    return data


def new_outbox() -> NotificationOutbox:
    return NotificationOutbox()


@contextmanager
def service_operation(operation: str, **context):
    """Log rejections and wrap infrastructure failures for one public operation.

    ServiceError subclasses are logged at WARNING and re-raised unchanged;
    SQLAlchemyError is logged at ERROR and re-raised as DatabaseError.
    """
    try:
        yield
    except ServiceError as e:
        log_rejection(logger, operation, e, **context)
        raise
    except SQLAlchemyError as e:
        log_operation(
            logger,
            operation=operation,
            outcome="database_error",
            level=logging.ERROR,
            error=str(e),
            **context,
        )
        raise DatabaseError(f"{operation} failed: {e}", original_error=e) from e
