"""
OrderRevision model for customer change requests.

The revision's own status is bookkeeping, decoupled from the order status:
the package allowance is checked against the count of ACCEPTED revisions.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import RevisionStatus, enum_values


class OrderRevision(BaseModel):
    """
    Revision request.

    Attributes:
        order_id: Order the revision was requested on
        requested_by_user_id: Customer user who asked for it
        message: What should change
        status: pending, accepted or rejected
        resolved_at: When the status left pending
    """

    __tablename__ = "order_revisions"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    requested_by_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    message = Column(Text, nullable=False)
    status = Column(
        SQLEnum(RevisionStatus, name="revision_status", values_callable=enum_values),
        nullable=False,
        default=RevisionStatus.PENDING,
    )
    resolved_at = Column(DateTime, nullable=True)

    order = relationship("Order", back_populates="revisions")

    __table_args__ = (
        Index("idx_revision_order", "order_id"),
        Index("idx_revision_order_status", "order_id", "status"),
    )

    def __repr__(self) -> str:
        return f"OrderRevision(id={self.id}, order_id={self.order_id}, status={self.status})"
