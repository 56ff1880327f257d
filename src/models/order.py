"""
Order model - the central aggregate of the order lifecycle.

An order is created exactly once by a purchase, mutated only through the
lifecycle services and never deleted; cancellation is a terminal status.

Money invariant:
    total_amount == platform_fee + seller_earnings
"""

import json
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import EscrowStatus, OrderStatus, PackageTier, enum_values

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class Order(BaseModel):
    """
    Purchased gig order.

    Attributes:
        order_number: Human-readable unique number (ORD-<timestamp>-<suffix>)
        customer_id: Buyer profile
        seller_id: Seller profile
        gig_id: Purchased gig
        package_id: Purchased package row
        package_tier: Tier copied at purchase time
        package_price: Package price copied at purchase time
        package_delivery_days: Delivery days copied at purchase time
        package_revisions: Revision allowance copied at purchase time
            (NULL = unlimited); authority for quota checks
        total_amount: Amount paid by the customer
        platform_fee: Platform commission (15% of total, rounded to the cent)
        seller_earnings: total_amount - platform_fee
        status: Lifecycle status (see OrderStatus)
        escrow_status: held, released or refunded
        delivery_date: Deadline until first delivery, then the delivered time
        completed_at / cancelled_at / released_at / refunded_at: Stamps
        cancellation_reason: Optional reason (required for admin cancellation)
        cancelled_by_user_id: User who triggered the cancellation
        requirements_data: JSON answers captured at purchase (immutable)

    Note:
        - status is written with a compare-and-swap UPDATE by the state
          machine service; never assign it directly
        - JSON columns use Text type for SQLite compatibility
    """

    __tablename__ = "orders"

    order_number = Column(String(40), nullable=False)

    # Parties
    customer_id = Column(
        Integer, ForeignKey("customer_profiles.id", ondelete="RESTRICT"), nullable=False
    )
    seller_id = Column(
        Integer, ForeignKey("seller_profiles.id", ondelete="RESTRICT"), nullable=False
    )

    # Commerce (package snapshot)
    gig_id = Column(Integer, ForeignKey("gigs.id", ondelete="RESTRICT"), nullable=False)
    package_id = Column(
        Integer, ForeignKey("gig_packages.id", ondelete="RESTRICT"), nullable=False
    )
    package_tier = Column(
        SQLEnum(PackageTier, name="package_tier", values_callable=enum_values),
        nullable=False,
    )
    package_price = Column(Numeric(10, 2), nullable=False)
    package_delivery_days = Column(Integer, nullable=False)
    package_revisions = Column(Integer, nullable=True)

    # Money
    total_amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    seller_earnings = Column(Numeric(10, 2), nullable=False)

    # Lifecycle
    status = Column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    escrow_status = Column(
        SQLEnum(EscrowStatus, name="escrow_status", values_callable=enum_values),
        nullable=False,
        default=EscrowStatus.HELD,
    )
    delivery_date = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by_user_id = Column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )

    requirements_data = Column(Text, nullable=False, default="{}")

    # Relationships
    customer = relationship("CustomerProfile", lazy="joined")
    seller = relationship("SellerProfile", lazy="joined")
    gig = relationship("Gig")
    deliveries = relationship(
        "OrderDelivery",
        back_populates="order",
        order_by="OrderDelivery.id",
        cascade="all, delete-orphan",
    )
    revisions = relationship(
        "OrderRevision",
        back_populates="order",
        order_by="OrderRevision.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("uq_order_number", "order_number", unique=True),
        Index("idx_order_customer", "customer_id"),
        Index("idx_order_seller", "seller_id"),
        Index("idx_order_status", "status"),
        CheckConstraint("total_amount > 0", name="ck_order_total_positive"),
        CheckConstraint("platform_fee >= 0", name="ck_order_fee_non_negative"),
    )

    @property
    def requirements_response(self) -> dict:
        """Answers the customer gave at purchase time."""
        return json.loads(self.requirements_data) if self.requirements_data else {}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_unlimited_revisions(self) -> bool:
        return self.package_revisions is None

    def to_dict(self) -> dict:
        """
        Convert order to dictionary.

        Money is rendered as strings to keep cent precision; the JSON
        requirements column is decoded.
        """
        result = super().to_dict()

        for field in ("package_price", "total_amount", "platform_fee", "seller_earnings"):
            value = getattr(self, field)
            if isinstance(value, Decimal):
                result[field] = str(value)

        result.pop("requirements_data", None)
        result["requirements_response"] = self.requirements_response
        return result

    def __repr__(self) -> str:
        return (
            f"Order(id={self.id}, order_number='{self.order_number}', "
            f"status={self.status}, total_amount={self.total_amount})"
        )
