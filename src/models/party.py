"""
Party models for the two sides of the marketplace.

This module contains:
- User: Authenticated identity, optionally a platform administrator
- CustomerProfile: Buyer profile attached to a user
- SellerProfile: Seller (tasker) profile attached to a user, with aggregate stats
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class User(BaseModel):
    """
    User identity as resolved by the authentication collaborator.

    Attributes:
        email: Unique login email
        display_name: Name shown to the counter-party
        is_admin: Platform administrator flag; admins may cancel and refund
            orders they are not a party to
    """

    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(200), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)

    customer_profile = relationship("CustomerProfile", back_populates="user", uselist=False)
    seller_profile = relationship("SellerProfile", back_populates="user", uselist=False)

    def __repr__(self) -> str:
        return f"User(id={self.id}, email='{self.email}', is_admin={self.is_admin})"


class CustomerProfile(BaseModel):
    """Buyer profile. Orders reference this row as customer_id."""

    __tablename__ = "customer_profiles"

    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, unique=True
    )

    user = relationship("User", back_populates="customer_profile")

    def __repr__(self) -> str:
        return f"CustomerProfile(id={self.id}, user_id={self.user_id})"


class SellerProfile(BaseModel):
    """
    Seller profile. Orders and gigs reference this row as seller_id.

    Attributes:
        user_id: Owning user
        completed_tasks: Number of orders completed for this seller. Only ever
            changed with a SQL-level increment so concurrent completions
            cannot lose updates.
    """

    __tablename__ = "seller_profiles"

    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, unique=True
    )
    completed_tasks = Column(Integer, nullable=False, default=0)

    user = relationship("User", back_populates="seller_profile")
    gigs = relationship("Gig", back_populates="seller")

    __table_args__ = (
        CheckConstraint("completed_tasks >= 0", name="ck_seller_completed_tasks_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"SellerProfile(id={self.id}, user_id={self.user_id}, "
            f"completed_tasks={self.completed_tasks})"
        )
