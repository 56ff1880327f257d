"""Order Service - order creation, lookups and the transition dispatcher.

Purchase flow:
1. create_order() copies the chosen package into the order (price, delivery
   days, revision allowance), computes the escrow split, generates a unique
   order number and stores the order as PENDING with escrow HELD.
2. The seller accepts (accept_order) and the order moves to IN_PROGRESS.
3. Delivery, revision, completion and cancellation live in their own
   services; transition_order() routes a requested target status to them.

Session Management Pattern:
- All public functions accept optional session=None parameter
- If session provided, caller owns transaction (no commit)
- If session is None, function manages its own transaction
- Notifications are queued during the transaction and sent after it ends

Order numbers:
    ORD-<base36 epoch ms>-<random base36 suffix>, e.g. ORD-LZ8K2Q1A-7Q3XK0
    Candidates are checked against existing orders, and the unique index
    uq_order_number is the final arbiter. When this service owns the
    transaction, a collision at commit time retries the whole creation with
    a fresh number.
"""

import json
import logging
import secrets
import string
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models import (
    EscrowStatus,
    Order,
    OrderDelivery,
    OrderRevision,
    OrderStatus,
    PackageTier,
)
from src.services import catalog_service, completion_service, delivery_service, party_service
from src.services import revision_service
from src.services.database import session_scope
from src.services.dto import PaginatedResult, PaginationParams
from src.services.escrow_service import calculate_escrow_split
from src.services.exceptions import InvalidStateError, NotFoundError, ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.services.notification_service import NotificationEmitter, NotificationOutbox
from src.services.order_state_service import (
    ActorRole,
    TRANSITION_ROLES,
    allowed_targets,
    authorize_transition,
    coerce_status,
    compare_and_set_status,
    counterparty_user_ids,
    get_order_or_raise,
    new_outbox,
    order_notification_data,
    resolve_actor_role,
    service_operation,
    validate_transition,
)
from src.utils.constants import (
    ORDER_NUMBER_MAX_ATTEMPTS,
    ORDER_NUMBER_PREFIX,
    ORDER_NUMBER_SUFFIX_LENGTH,
)
from src.utils.datetime_utils import add_days, utc_now

logger = get_service_logger(__name__)

_BASE36_ALPHABET = string.digits + string.ascii_uppercase


# =============================================================================
# Order numbers
# =============================================================================


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_order_number(now=None) -> str:
    """Build a candidate order number from the clock and a random suffix.

    Examples:
        >>> generate_order_number()
        'ORD-LZ8K2Q1A-7Q3XK0'
    """
    now = now or utc_now()
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(ORDER_NUMBER_SUFFIX_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}-{_to_base36(millis)}-{suffix}"


def _unused_order_number(session: Session) -> str:
    """Generate order numbers until one is not already taken."""
    for _ in range(ORDER_NUMBER_MAX_ATTEMPTS):
        candidate = generate_order_number()
        exists = session.query(Order.id).filter(Order.order_number == candidate).first()
        if exists is None:
            return candidate
        log_operation(
            logger,
            operation="generate_order_number",
            outcome="collision",
            level=logging.WARNING,
            order_number=candidate,
        )
    raise ValidationError(
        [f"Unable to generate unique order number after {ORDER_NUMBER_MAX_ATTEMPTS} attempts"]
    )


def _is_order_number_collision(error: IntegrityError) -> bool:
    message = str(error.orig) if error.orig is not None else str(error)
    return "order_number" in message or "uq_order_number" in message


# =============================================================================
# Creation
# =============================================================================


def create_order(
    customer_user_id: int,
    gig_id: int,
    package_id: int,
    requirements_response: Optional[Dict[str, Any]] = None,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Create an order for a gig package.

    Args:
        customer_user_id: User placing the order (must have a customer profile)
        gig_id: Gig being purchased (must be ACTIVE)
        package_id: Package of that gig
        requirements_response: Answers to the gig's requirement questions
        session: Optional database session
        notifier: Emitter for the seller notification

    Returns:
        Created order as dictionary (status "pending", escrow "held")

    Raises:
        NotFoundError: If the customer profile, gig or package is missing
        ValidationError: If the package is not of this gig, the gig is not
            purchasable, or the customer is the gig's seller
    """
    context = {"customer_user_id": customer_user_id, "gig_id": gig_id, "package_id": package_id}
    with service_operation("create_order", **context):
        if session is not None:
            outbox = new_outbox()
            result = _create_order_impl(
                customer_user_id, gig_id, package_id, requirements_response, session, outbox
            )
        else:
            result, outbox = _create_order_with_retry(
                customer_user_id, gig_id, package_id, requirements_response
            )
    outbox.dispatch(notifier)
    return result


def _create_order_with_retry(customer_user_id, gig_id, package_id, requirements_response):
    for attempt in range(ORDER_NUMBER_MAX_ATTEMPTS):
        outbox = new_outbox()
        try:
            with session_scope() as session:
                result = _create_order_impl(
                    customer_user_id, gig_id, package_id, requirements_response, session, outbox
                )
            return result, outbox
        except IntegrityError as e:
            if _is_order_number_collision(e) and attempt < ORDER_NUMBER_MAX_ATTEMPTS - 1:
                log_operation(
                    logger,
                    operation="create_order",
                    outcome="order_number_retry",
                    level=logging.WARNING,
                    attempt=attempt + 1,
                )
                continue
            raise
    raise ValidationError(
        [f"Unable to generate unique order number after {ORDER_NUMBER_MAX_ATTEMPTS} attempts"]
    )


def _create_order_impl(
    customer_user_id: int,
    gig_id: int,
    package_id: int,
    requirements_response: Optional[Dict[str, Any]],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    customer = party_service.get_customer_by_user(customer_user_id, session)
    snapshot = catalog_service.get_package_snapshot(gig_id, package_id, session)
    gig = catalog_service.load_gig(gig_id, session)

    if gig.seller.user_id == customer_user_id:
        raise ValidationError(["Sellers cannot order their own gig"])
    if requirements_response is not None and not isinstance(requirements_response, dict):
        raise ValidationError(["Requirements response must be a mapping of answers"])

    split = calculate_escrow_split(snapshot.price)
    now = utc_now()

    order = Order(
        order_number=_unused_order_number(session),
        customer_id=customer.id,
        seller_id=gig.seller_id,
        gig_id=snapshot.gig_id,
        package_id=snapshot.package_id,
        package_tier=PackageTier(snapshot.tier),
        package_price=snapshot.price,
        package_delivery_days=snapshot.delivery_days,
        package_revisions=snapshot.revisions,
        total_amount=split.total_amount,
        platform_fee=split.platform_fee,
        seller_earnings=split.seller_earnings,
        status=OrderStatus.PENDING,
        escrow_status=EscrowStatus.HELD,
        delivery_date=add_days(now, snapshot.delivery_days),
        requirements_data=json.dumps(requirements_response or {}),
    )
    session.add(order)
    session.flush()

    catalog_service.increment_orders_count(gig_id, session)

    outbox.add(
        gig.seller.user_id,
        "New Order Received!",
        f"You have a new order {order.order_number} for {split.total_amount}",
        order_notification_data(order),
    )

    log_operation(
        logger,
        operation="create_order",
        outcome="success",
        order_id=order.id,
        order_number=order.order_number,
        total_amount=str(split.total_amount),
        platform_fee=str(split.platform_fee),
    )
    return order.to_dict()


# =============================================================================
# Lookups
# =============================================================================


def get_order(order_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get order by ID.

    Raises:
        NotFoundError: If the order does not exist
    """
    if session is not None:
        return get_order_or_raise(order_id, session).to_dict()
    with session_scope() as session:
        return get_order_or_raise(order_id, session).to_dict()


def get_order_by_number(order_number: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Get order by its human-readable number (case-insensitive)."""
    if session is not None:
        return _get_order_by_number_impl(order_number, session)
    with session_scope() as session:
        return _get_order_by_number_impl(order_number, session)


def _get_order_by_number_impl(order_number: str, session: Session) -> Dict[str, Any]:
    normalized = (order_number or "").strip().upper()
    order = session.query(Order).filter(Order.order_number == normalized).first()
    if order is None:
        raise NotFoundError("Order", order_number)
    return order.to_dict()


def get_order_detail(order_id: int, session: Optional[Session] = None) -> Dict[str, Any]:
    """Order with its deliveries and revisions (both oldest first)."""
    if session is not None:
        return _get_order_detail_impl(order_id, session)
    with session_scope() as session:
        return _get_order_detail_impl(order_id, session)


def _get_order_detail_impl(order_id: int, session: Session) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    result = order.to_dict()
    result["deliveries"] = [
        d.to_dict()
        for d in session.query(OrderDelivery)
        .filter(OrderDelivery.order_id == order_id)
        .order_by(OrderDelivery.id)
    ]
    result["revisions"] = [
        r.to_dict()
        for r in session.query(OrderRevision)
        .filter(OrderRevision.order_id == order_id)
        .order_by(OrderRevision.id)
    ]
    return result


def list_orders_for_user(
    user_id: int,
    role: str,
    status: Optional[OrderStatus] = None,
    pagination: Optional[PaginationParams] = None,
    session: Optional[Session] = None,
) -> PaginatedResult:
    """List a user's orders as customer or seller, newest first.

    Args:
        user_id: User whose orders to list
        role: "customer" or "seller"
        status: Optional status filter
        pagination: Optional page; None returns everything in one page
        session: Optional database session

    Raises:
        ValidationError: If role or status is not recognised
    """
    if session is not None:
        return _list_orders_impl(user_id, role, status, pagination, session)
    with session_scope() as session:
        return _list_orders_impl(user_id, role, status, pagination, session)


def _list_orders_impl(user_id, role, status, pagination, session: Session) -> PaginatedResult:
    try:
        role = ActorRole(role)
    except ValueError:
        raise ValidationError([f"Role must be 'customer' or 'seller', got '{role}'"])

    if role == ActorRole.CUSTOMER:
        profile = party_service.get_customer_by_user(user_id, session)
        query = session.query(Order).filter(Order.customer_id == profile.id)
    elif role == ActorRole.SELLER:
        profile = party_service.get_seller_by_user(user_id, session)
        query = session.query(Order).filter(Order.seller_id == profile.id)
    else:
        raise ValidationError([f"Role must be 'customer' or 'seller', got '{role.value}'"])

    if status is not None:
        query = query.filter(Order.status == _parse_status(status))

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    total = query.count()

    if pagination is None:
        items = [o.to_dict() for o in query.all()]
        return PaginatedResult(items=items, total=total, page=1, per_page=max(total, 1))

    items = [o.to_dict() for o in query.offset(pagination.offset()).limit(pagination.per_page)]
    return PaginatedResult(
        items=items, total=total, page=pagination.page, per_page=pagination.per_page
    )


def _parse_status(status) -> OrderStatus:
    try:
        return coerce_status(status)
    except ValueError:
        raise ValidationError([f"Unknown order status '{status}'"])


# =============================================================================
# Seller acceptance and resume
# =============================================================================


def accept_order(
    order_id: int,
    actor_user_id: int,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Seller accepts a pending order: PENDING -> IN_PROGRESS.

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the actor is not the seller
        InvalidTransitionError: If the order is not PENDING
    """
    outbox = new_outbox()
    with service_operation("accept_order", order_id=order_id, actor_user_id=actor_user_id):
        if session is not None:
            result = _move_to_in_progress(
                order_id, actor_user_id, OrderStatus.PENDING, "accept", session, outbox
            )
        else:
            with session_scope() as session:
                result = _move_to_in_progress(
                    order_id, actor_user_id, OrderStatus.PENDING, "accept", session, outbox
                )
    outbox.dispatch(notifier)
    return result


def start_revision_work(
    order_id: int,
    actor_user_id: int,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Seller resumes work on a requested revision: REVISION_REQUESTED -> IN_PROGRESS."""
    outbox = new_outbox()
    with service_operation("start_revision_work", order_id=order_id, actor_user_id=actor_user_id):
        if session is not None:
            result = _move_to_in_progress(
                order_id, actor_user_id, OrderStatus.REVISION_REQUESTED, "resume", session, outbox
            )
        else:
            with session_scope() as session:
                result = _move_to_in_progress(
                    order_id,
                    actor_user_id,
                    OrderStatus.REVISION_REQUESTED,
                    "resume",
                    session,
                    outbox,
                )
    outbox.dispatch(notifier)
    return result


def _move_to_in_progress(
    order_id: int,
    actor_user_id: int,
    expected: OrderStatus,
    action: str,
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    role = authorize_transition(order, actor_user_id, OrderStatus.IN_PROGRESS, action, session)
    validate_transition(order.id, order.status, OrderStatus.IN_PROGRESS)
    if order.status != expected:
        # accept on a revision, or resume on a pending order
        raise InvalidStateError(order.id, order.status, f"{action} order", [expected])

    compare_and_set_status(session, order, expected, OrderStatus.IN_PROGRESS)

    if expected == OrderStatus.PENDING:
        title, message = "Order Accepted", f"Your order {order.order_number} has been accepted"
    else:
        title, message = (
            "Revision In Progress",
            f"The seller started working on your revision for order {order.order_number}",
        )
    for recipient in counterparty_user_ids(order, role):
        outbox.add(recipient, title, message, order_notification_data(order, status=order.status.value))

    log_operation(
        logger,
        operation=f"{action}_order",
        outcome="success",
        order_id=order.id,
        actor_user_id=actor_user_id,
        from_status=expected.value,
        to_status=OrderStatus.IN_PROGRESS.value,
    )
    return order.to_dict()


# =============================================================================
# Generic transition entry point
# =============================================================================


def transition_order(
    order_id: int,
    actor_user_id: int,
    target_status,
    reason: Optional[str] = None,
    session: Optional[Session] = None,
    notifier: Optional[NotificationEmitter] = None,
) -> Dict[str, Any]:
    """Move an order to ``target_status`` on behalf of ``actor_user_id``.

    The requested target is routed to the operation that owns it:
        in_progress        -> accept_order / start_revision_work
        delivered          -> submit_delivery (with an empty delivery)
        revision_requested -> request_revision (``reason`` is the message)
        completed          -> complete_order
        cancelled          -> cancel_order (``reason`` optional, required for admins)

    Returns:
        Updated order as dictionary

    Raises:
        NotFoundError: If the order does not exist
        AuthorizationError: If the actor may not move the order to the target
        InvalidTransitionError: If (current, target) is not an allowed move
        ValidationError: If the target status is unknown
    """
    outbox = new_outbox()
    context = {"order_id": order_id, "actor_user_id": actor_user_id, "target_status": str(target_status)}
    with service_operation("transition_order", **context):
        target = _parse_status(target_status)
        if session is not None:
            result = _transition_order_impl(order_id, actor_user_id, target, reason, session, outbox)
        else:
            with session_scope() as session:
                result = _transition_order_impl(
                    order_id, actor_user_id, target, reason, session, outbox
                )
    outbox.dispatch(notifier)
    return result


def _transition_order_impl(
    order_id: int,
    actor_user_id: int,
    target: OrderStatus,
    reason: Optional[str],
    session: Session,
    outbox: NotificationOutbox,
) -> Dict[str, Any]:
    order = get_order_or_raise(order_id, session)
    if target not in TRANSITION_ROLES:
        validate_transition(order.id, order.status, target)
    authorize_transition(order, actor_user_id, target, f"move to {target.value}", session)
    validate_transition(order.id, order.status, target)

    if target == OrderStatus.IN_PROGRESS:
        return _move_to_in_progress(
            order_id,
            actor_user_id,
            order.status,
            "accept" if order.status == OrderStatus.PENDING else "resume",
            session,
            outbox,
        )
    if target == OrderStatus.DELIVERED:
        delivery_service._submit_delivery_impl(order_id, actor_user_id, None, (), session, outbox)
    elif target == OrderStatus.REVISION_REQUESTED:
        revision_service._request_revision_impl(order_id, actor_user_id, reason, session, outbox)
    elif target == OrderStatus.COMPLETED:
        completion_service._complete_order_impl(order_id, actor_user_id, session, outbox)
    elif target == OrderStatus.CANCELLED:
        completion_service._cancel_order_impl(order_id, actor_user_id, reason, session, outbox)

    session.refresh(order)
    return order.to_dict()


# =============================================================================
# Capability query
# =============================================================================

_ACTION_TARGETS = {
    "accept": OrderStatus.IN_PROGRESS,
    "start_revision": OrderStatus.IN_PROGRESS,
    "deliver": OrderStatus.DELIVERED,
    "request_revision": OrderStatus.REVISION_REQUESTED,
    "complete": OrderStatus.COMPLETED,
    "cancel": OrderStatus.CANCELLED,
}


def get_allowed_actions(order_id: int, actor_user_id: int, session: Optional[Session] = None) -> List[str]:
    """Actions ``actor_user_id`` may currently take on the order.

    Derived from the same transition table, role rules and quota check the
    operations enforce. Possible values: accept, start_revision, deliver,
    request_revision, complete, cancel, refund.
    """
    if session is not None:
        return _get_allowed_actions_impl(order_id, actor_user_id, session)
    with session_scope() as session:
        return _get_allowed_actions_impl(order_id, actor_user_id, session)


def _get_allowed_actions_impl(order_id: int, actor_user_id: int, session: Session) -> List[str]:
    order = get_order_or_raise(order_id, session)
    role = resolve_actor_role(order, actor_user_id, session)
    if role is None:
        return []

    targets = set(allowed_targets(order.status))
    actions = []
    for action, target in _ACTION_TARGETS.items():
        if action == "deliver":
            # redelivery goes straight from revision_requested
            reachable = order.status in delivery_service.DELIVERABLE_STATUSES
        else:
            reachable = target in targets
        if not reachable or role not in TRANSITION_ROLES[target]:
            continue
        if action == "accept" and order.status != OrderStatus.PENDING:
            continue
        if action == "start_revision" and order.status != OrderStatus.REVISION_REQUESTED:
            continue
        if action == "request_revision" and not revision_service.has_revision_allowance(order, session):
            continue
        actions.append(action)

    if role == ActorRole.ADMIN and order.escrow_status == EscrowStatus.HELD:
        actions.append("refund")
    return actions
