"""
AuditLogEntry model - append-only record of administrative actions.

Rows are inserted in the same transaction as the admin action they describe.
Updating or deleting an entry through the ORM raises AuditLogImmutableError.
"""

import json

from sqlalchemy import (
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)

from .base import BaseModel
from .enums import AuditAction, enum_values


class AuditLogImmutableError(Exception):
    """Raised when code tries to modify or remove an audit log entry."""


class AuditLogEntry(BaseModel):
    """
    Administrative audit record keyed by (entity_id, actor_user_id, created_at, reason).

    Attributes:
        action: What the administrator did
        entity_type: Table of the affected row ("orders")
        entity_id: Id of the affected row
        actor_user_id: Administrator who acted
        reason: Mandatory free-text justification
        details_data: JSON with extra context (order number, amounts)
    """

    __tablename__ = "audit_log_entries"

    action = Column(
        SQLEnum(AuditAction, name="audit_action", values_callable=enum_values),
        nullable=False,
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    reason = Column(Text, nullable=False)
    details_data = Column(Text, nullable=False, default="{}")

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_actor", "actor_user_id"),
    )

    @property
    def details(self) -> dict:
        return json.loads(self.details_data) if self.details_data else {}

    def to_dict(self) -> dict:
        result = super().to_dict()
        result.pop("details_data", None)
        result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"AuditLogEntry(id={self.id}, action={self.action}, "
            f"entity_id={self.entity_id}, actor_user_id={self.actor_user_id})"
        )


@event.listens_for(AuditLogEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be modified")


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be deleted")
