"""Service layer exception classes for the Gig Orders engine.

This module defines all custom exceptions used by the service layer so callers
can tell business errors apart from infrastructure failures without matching
on message strings. Every exception carries a stable ``code`` and exposes its
structured context through ``to_dict()``.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFoundError            code="not_found"
    ├── AuthorizationError       code="forbidden"
    ├── InvalidTransitionError   code="invalid_transition"
    ├── InvalidStateError        code="invalid_state"
    ├── QuotaExceededError       code="quota_exceeded"
    ├── ValidationError          code="validation_error"
    └── DatabaseError            code="internal_error"
"""

from typing import Any, Dict, Iterable, Optional


def _status_value(status) -> Optional[str]:
    """Render an OrderStatus (or plain string) as its value."""
    if status is None:
        return None
    return getattr(status, "value", status)


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    code = "service_error"

    def context(self) -> Dict[str, Any]:
        """Structured fields describing the failure (overridden by subclasses)."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses.

        Example:
            >>> QuotaExceededError(7, allowance=2, used=2).to_dict()["code"]
            'quota_exceeded'
        """
        return {"code": self.code, "message": str(self), **self.context()}


class NotFoundError(ServiceError):
    """Raised when a referenced order, gig, package or party does not exist.

    Args:
        entity: Kind of record ("Order", "Gig", "GigPackage", "CustomerProfile", ...)
        identifier: The id, number or user id that was looked up

    Example:
        >>> raise NotFoundError("Order", 123)
        NotFoundError: Order 123 not found
    """

    code = "not_found"

    def __init__(self, entity: str, identifier: Any):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found")

    def context(self) -> Dict[str, Any]:
        return {"entity": self.entity, "identifier": self.identifier}


class AuthorizationError(ServiceError):
    """Raised when the actor may not perform an operation on an order.

    Args:
        actor_user_id: User attempting the operation
        order_id: Order being operated on
        action: Operation name ("deliver", "complete", ...)
        required_role: Role the operation needs, if a single one
    """

    code = "forbidden"

    def __init__(
        self,
        actor_user_id: int,
        order_id: Optional[int],
        action: str,
        required_role: Optional[str] = None,
    ):
        self.actor_user_id = actor_user_id
        self.order_id = order_id
        self.action = action
        self.required_role = required_role
        if required_role:
            message = f"User {actor_user_id} cannot {action} order {order_id}: only the {required_role} can"
        else:
            message = f"User {actor_user_id} is not permitted to {action} order {order_id}"
        super().__init__(message)

    def context(self) -> Dict[str, Any]:
        return {
            "actor_user_id": self.actor_user_id,
            "order_id": self.order_id,
            "action": self.action,
            "required_role": self.required_role,
        }


class InvalidTransitionError(ServiceError):
    """Raised when a (from, to) status pair is not in the transition table.

    Also raised to the loser of a concurrent transition race, with
    ``from_status`` set to the state the winner left behind.

    Example:
        >>> raise InvalidTransitionError(5, OrderStatus.PENDING, OrderStatus.COMPLETED, [...])
        InvalidTransitionError: Invalid status transition for order 5: pending -> completed
    """

    code = "invalid_transition"

    def __init__(self, order_id: int, from_status, to_status, allowed: Iterable = ()):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = [_status_value(s) for s in allowed]
        allowed_msg = ", ".join(self.allowed) if self.allowed else "none (terminal)"
        super().__init__(
            f"Invalid status transition for order {order_id}: "
            f"{_status_value(from_status)} -> {_status_value(to_status)} "
            f"(allowed from {_status_value(from_status)}: {allowed_msg})"
        )

    def context(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "from_status": _status_value(self.from_status),
            "to_status": _status_value(self.to_status),
            "allowed": self.allowed,
        }


class InvalidStateError(ServiceError):
    """Raised when an operation-specific precondition on the status fails.

    Args:
        order_id: Order being operated on
        current_status: Status the order is actually in
        operation: Description of what was attempted
        expected: Statuses the operation accepts
    """

    code = "invalid_state"

    def __init__(self, order_id: int, current_status, operation: str, expected: Iterable = ()):
        self.order_id = order_id
        self.current_status = current_status
        self.operation = operation
        self.expected = [_status_value(s) for s in expected]
        super().__init__(
            f"Cannot {operation} for order {order_id} with status: {_status_value(current_status)}"
        )

    def context(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "current_status": _status_value(self.current_status),
            "expected": self.expected,
        }


class QuotaExceededError(ServiceError):
    """Raised when an order has used up its package revision allowance.

    Example:
        >>> raise QuotaExceededError(9, allowance=2, used=2)
        QuotaExceededError: Revision limit reached: package includes 2 revision(s)
    """

    code = "quota_exceeded"

    def __init__(self, order_id: int, allowance: int, used: int):
        self.order_id = order_id
        self.allowance = allowance
        self.used = used
        super().__init__(f"Revision limit reached: package includes {allowance} revision(s)")

    def context(self) -> Dict[str, Any]:
        return {"order_id": self.order_id, "allowance": self.allowance, "used": self.used}


class ValidationError(ServiceError):
    """Raised when input data fails validation.

    Args:
        errors: List of human-readable problems
    """

    code = "validation_error"

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")

    def context(self) -> Dict[str, Any]:
        return {"errors": list(self.errors)}


class DatabaseError(ServiceError):
    """Raised when a database operation fails.

    Infrastructure failure, distinct from the business errors above; callers
    should treat it as an internal error rather than show it to the user.
    """

    code = "internal_error"

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
