"""
Database models package.

This package contains all SQLAlchemy ORM models for the order engine.
"""

from .base import Base, BaseModel
from .enums import (
    AuditAction,
    EscrowStatus,
    GigStatus,
    OrderStatus,
    PackageTier,
    RevisionStatus,
)
from .party import User, CustomerProfile, SellerProfile
from .gig import Gig, GigPackage
from .order import Order, TERMINAL_STATUSES
from .order_delivery import OrderDelivery
from .order_revision import OrderRevision
from .audit_log import AuditLogEntry, AuditLogImmutableError

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "AuditAction",
    "EscrowStatus",
    "GigStatus",
    "OrderStatus",
    "PackageTier",
    "RevisionStatus",
    # Parties
    "User",
    "CustomerProfile",
    "SellerProfile",
    # Catalog
    "Gig",
    "GigPackage",
    # Orders
    "Order",
    "TERMINAL_STATUSES",
    "OrderDelivery",
    "OrderRevision",
    # Audit
    "AuditLogEntry",
    "AuditLogImmutableError",
]
