"""Services package - Business logic layer for Gig Orders.

This package contains all service modules that provide business logic
and database operations for the order engine.

Architecture:
- Services: Stateless functions organized by lifecycle concern
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Notifications: Queued per transaction, dispatched after commit

Service Modules:
- party_service: Users, customer and seller profiles, seller statistics
- catalog_service: Gigs, pricing packages, package snapshots
- order_service: Order creation, lookups, transition dispatcher, capabilities
- order_state_service: Transition table, authorization, compare-and-swap writes
- delivery_service: Seller deliveries
- revision_service: Revision requests and quota
- completion_service: Completion, cancellation, escrow refund
- audit_service: Administrative audit log

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- escrow_service: Fee split arithmetic
- notification_service: Notification emitters and outbox
"""

from . import (
    database,
    escrow_service,
    notification_service,
    order_state_service,
    party_service,
    catalog_service,
    audit_service,
    revision_service,
    delivery_service,
    completion_service,
    order_service,
)

from .exceptions import (
    AuthorizationError,
    DatabaseError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    QuotaExceededError,
    ServiceError,
    ValidationError,
)

__all__ = [
    "database",
    "escrow_service",
    "notification_service",
    "order_state_service",
    "party_service",
    "catalog_service",
    "audit_service",
    "revision_service",
    "delivery_service",
    "completion_service",
    "order_service",
    "AuthorizationError",
    "DatabaseError",
    "InvalidStateError",
    "InvalidTransitionError",
    "NotFoundError",
    "QuotaExceededError",
    "ServiceError",
    "ValidationError",
]
