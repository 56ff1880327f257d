"""Audit Service - append-only log of administrative actions.

Entries are written inside the transaction of the admin action they
describe, so an action and its audit record commit or roll back together.
"""

import json
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import AuditAction, AuditLogEntry, Order
from src.services.database import session_scope
from src.services.exceptions import ValidationError
from src.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

ORDER_ENTITY = "orders"


def record_order_action(
    session: Session,
    action: AuditAction,
    order: Order,
    actor_user_id: int,
    reason: str,
    **details,
) -> AuditLogEntry:
    """Append an audit entry for an administrative action on an order.

    Transaction boundary: Inherits session from caller.
    """
    details.setdefault("order_number", order.order_number)
    entry = AuditLogEntry(
        action=action,
        entity_type=ORDER_ENTITY,
        entity_id=order.id,
        actor_user_id=actor_user_id,
        reason=reason,
        details_data=json.dumps(details, default=str),
    )
    session.add(entry)
    session.flush()

    log_operation(
        logger,
        operation="audit",
        outcome=action.value,
        order_id=order.id,
        actor_user_id=actor_user_id,
        audit_entry_id=entry.id,
    )
    return entry


def get_audit_log(
    entity_id: Optional[int] = None,
    action: Optional[AuditAction] = None,
    session: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    """Audit entries, oldest first, optionally for one order and/or action."""
    if session is not None:
        return _get_audit_log_impl(entity_id, action, session)
    with session_scope() as session:
        return _get_audit_log_impl(entity_id, action, session)


def _get_audit_log_impl(entity_id, action, session: Session) -> List[Dict[str, Any]]:
    query = session.query(AuditLogEntry)
    if entity_id is not None:
        query = query.filter(
            AuditLogEntry.entity_type == ORDER_ENTITY, AuditLogEntry.entity_id == entity_id
        )
    if action is not None:
        try:
            action = AuditAction(action)
        except ValueError:
            raise ValidationError([f"Unknown audit action '{action}'"])
        query = query.filter(AuditLogEntry.action == action)
    return [e.to_dict() for e in query.order_by(AuditLogEntry.created_at, AuditLogEntry.id)]
