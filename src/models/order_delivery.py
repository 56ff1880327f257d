"""
OrderDelivery model for seller-submitted work.

Each delivery is an immutable record; redeliveries after a revision add
new rows rather than changing old ones.
"""

import json

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.datetime_utils import utc_now


class OrderDelivery(BaseModel):
    """
    Delivered artifact bundle.

    Attributes:
        order_id: Order the work was delivered for
        message: Optional note from the seller
        attachments_data: JSON list of attachment URIs, order preserved
        delivered_at: When the delivery was submitted
    """

    __tablename__ = "order_deliveries"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=True)
    attachments_data = Column(Text, nullable=False, default="[]")
    delivered_at = Column(DateTime, nullable=False, default=utc_now)

    order = relationship("Order", back_populates="deliveries")

    __table_args__ = (Index("idx_delivery_order", "order_id"),)

    @property
    def attachments(self) -> list:
        return json.loads(self.attachments_data) if self.attachments_data else []

    def to_dict(self) -> dict:
        result = super().to_dict()
        result.pop("attachments_data", None)
        result["attachments"] = self.attachments
        return result

    def __repr__(self) -> str:
        return f"OrderDelivery(id={self.id}, order_id={self.order_id})"
