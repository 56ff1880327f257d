"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across order, delivery, revision and
settlement operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful transition
    log_operation(
        logger,
        operation="complete_order",
        outcome="success",
        order_id=123,
        seller_id=45,
    )

    # Log rejected operation
    log_operation(
        logger,
        operation="request_revision",
        outcome="quota_exceeded",
        level=logging.WARNING,
        order_id=123,
        allowance=2,
    )
"""

import logging
from typing import Any

from src.services.exceptions import ServiceError

LOGGER_PREFIX = "gig_orders.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named with the 'gig_orders.services' prefix.

    Example:
        >>> logger = get_service_logger("src.services.order_service")
        >>> logger.name
        'gig_orders.services.order_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_order", "submit_delivery")
        outcome: Outcome description (e.g., "success", "invalid_transition")
        level: Log level (default: INFO)
        **context: Additional context fields (order_id, actor_user_id, ...)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)


def log_rejection(logger: logging.Logger, operation: str, error: ServiceError, **context: Any) -> None:
    """Log a business-rule rejection at WARNING using the error's code as outcome."""
    log_operation(
        logger,
        operation=operation,
        outcome=error.code,
        level=logging.WARNING,
        error=str(error),
        **context,
    )
