"""
Enumerations for the order lifecycle.

This module contains enums used across order-related models:
- OrderStatus: Lifecycle state of a purchased order
- EscrowStatus: Whether the order's money is held, released or refunded
- PackageTier: Pricing tier of a gig package
- GigStatus: Publication state of a gig
- RevisionStatus: Bookkeeping state of a revision request
- AuditAction: Administrative actions recorded in the audit log
"""

from enum import Enum


class OrderStatus(str, Enum):
    """
    Order lifecycle status.

    Status transitions:
        PENDING -> IN_PROGRESS (seller accepts)
        IN_PROGRESS -> DELIVERED (seller delivers)
        DELIVERED -> REVISION_REQUESTED (customer asks for changes)
        REVISION_REQUESTED -> IN_PROGRESS (seller resumes work)
        DELIVERED -> COMPLETED (customer accepts)
        any non-terminal -> CANCELLED

    COMPLETED and CANCELLED are terminal.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EscrowStatus(str, Enum):
    """
    Escrow state of an order's funds, orthogonal to OrderStatus.

    Values:
        HELD: Captured at purchase, not yet paid out
        RELEASED: Paid out to the seller when the order completed
        REFUNDED: Returned to the customer by an administrator
    """

    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class PackageTier(str, Enum):
    """Pricing tier of a gig package."""

    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class GigStatus(str, Enum):
    """
    Publication state of a gig.

    Only ACTIVE gigs can be purchased.
    """

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class RevisionStatus(str, Enum):
    """
    Revision request state.

    Independent of the order status; the number of ACCEPTED revisions is
    what the package revision allowance is checked against.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AuditAction(str, Enum):
    """Administrative actions written to the audit log."""

    ORDER_CANCELLED = "order_cancelled"
    ESCROW_REFUNDED = "escrow_refunded"


def enum_values(enum_cls) -> list:
    """Column values for SQLEnum(values_callable=...) so rows store 'pending', not 'PENDING'."""
    return [member.value for member in enum_cls]
