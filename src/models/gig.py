"""
Gig catalog models.

This module contains:
- Gig: A seller's fixed-price service listing
- GigPackage: A pricing tier (basic/standard/premium) of a gig

Package rows may be edited after purchase; orders copy the values they need
at purchase time and never read the live row again.
"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import GigStatus, PackageTier, enum_values


class Gig(BaseModel):
    """
    Gig listing.

    Attributes:
        seller_id: Seller offering the gig
        title: Listing title
        description: Optional long description
        status: Publication state; only ACTIVE gigs are purchasable
        orders_count: Number of orders placed, incremented atomically
    """

    __tablename__ = "gigs"

    seller_id = Column(
        Integer, ForeignKey("seller_profiles.id", ondelete="RESTRICT"), nullable=False
    )
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        SQLEnum(GigStatus, name="gig_status", values_callable=enum_values),
        nullable=False,
        default=GigStatus.DRAFT,
    )
    orders_count = Column(Integer, nullable=False, default=0)

    seller = relationship("SellerProfile", back_populates="gigs")
    packages = relationship(
        "GigPackage", back_populates="gig", cascade="all, delete-orphan", lazy="selectin"
    )

    __table_args__ = (
        Index("idx_gig_seller", "seller_id"),
        Index("idx_gig_status", "status"),
    )

    @property
    def is_purchasable(self) -> bool:
        return self.status == GigStatus.ACTIVE

    def __repr__(self) -> str:
        return f"Gig(id={self.id}, title='{self.title}', status={self.status})"


class GigPackage(BaseModel):
    """
    Pricing tier of a gig.

    Attributes:
        gig_id: Owning gig
        tier: basic, standard or premium (one of each per gig)
        name: Display name of the package
        price: Positive price in the platform currency
        delivery_days: Days from purchase until the delivery deadline
        revisions: Revision allowance; NULL means unlimited
    """

    __tablename__ = "gig_packages"

    gig_id = Column(Integer, ForeignKey("gigs.id", ondelete="CASCADE"), nullable=False)
    tier = Column(
        SQLEnum(PackageTier, name="package_tier", values_callable=enum_values),
        nullable=False,
    )
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    delivery_days = Column(Integer, nullable=False)
    revisions = Column(Integer, nullable=True)

    gig = relationship("Gig", back_populates="packages")

    __table_args__ = (
        UniqueConstraint("gig_id", "tier", name="uq_gig_package_tier"),
        CheckConstraint("price > 0", name="ck_gig_package_price_positive"),
        CheckConstraint("delivery_days >= 1", name="ck_gig_package_delivery_days"),
        CheckConstraint(
            "revisions IS NULL OR revisions >= 0", name="ck_gig_package_revisions"
        ),
    )

    def to_dict(self) -> dict:
        result = super().to_dict()
        if isinstance(self.price, Decimal):
            result["price"] = str(self.price)
        return result

    def __repr__(self) -> str:
        return f"GigPackage(id={self.id}, gig_id={self.gig_id}, tier={self.tier}, price={self.price})"
