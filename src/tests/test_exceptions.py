"""Tests for service exceptions and DTOs."""

import pytest

from src.models import OrderStatus
from src.services.dto import PaginatedResult, PaginationParams
from src.services.exceptions import (
    AuthorizationError,
    DatabaseError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    QuotaExceededError,
    ServiceError,
    ValidationError,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        "error, code",
        [
            (NotFoundError("Order", 1), "not_found"),
            (AuthorizationError(2, 1, "deliver"), "forbidden"),
            (InvalidTransitionError(1, OrderStatus.PENDING, OrderStatus.COMPLETED), "invalid_transition"),
            (InvalidStateError(1, OrderStatus.PENDING, "submit delivery"), "invalid_state"),
            (QuotaExceededError(1, allowance=2, used=2), "quota_exceeded"),
            (ValidationError(["bad"]), "validation_error"),
            (DatabaseError("boom"), "internal_error"),
        ],
    )
    def test_codes(self, error, code):
        assert isinstance(error, ServiceError)
        assert error.code == code
        assert error.to_dict()["code"] == code
        assert error.to_dict()["message"] == str(error)

    def test_not_found_context(self):
        error = NotFoundError("Gig", 12)

        assert str(error) == "Gig 12 not found"
        assert error.to_dict()["entity"] == "Gig"
        assert error.to_dict()["identifier"] == 12

    def test_authorization_message(self):
        single = AuthorizationError(2, 1, "complete", required_role="customer")
        multiple = AuthorizationError(2, 1, "cancel")

        assert str(single) == "User 2 cannot complete order 1: only the customer can"
        assert str(multiple) == "User 2 is not permitted to cancel order 1"

    def test_invalid_transition_message(self):
        error = InvalidTransitionError(
            5, OrderStatus.PENDING, OrderStatus.COMPLETED, [OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED]
        )

        assert str(error) == (
            "Invalid status transition for order 5: pending -> completed "
            "(allowed from pending: in_progress, cancelled)"
        )
        assert error.to_dict()["allowed"] == ["in_progress", "cancelled"]

    def test_terminal_transition_message(self):
        error = InvalidTransitionError(5, OrderStatus.COMPLETED, OrderStatus.CANCELLED)

        assert "none (terminal)" in str(error)

    def test_invalid_state_context(self):
        error = InvalidStateError(
            3, OrderStatus.DELIVERED, "submit delivery", [OrderStatus.IN_PROGRESS]
        )

        assert str(error) == "Cannot submit delivery for order 3 with status: delivered"
        assert error.to_dict()["current_status"] == "delivered"
        assert error.to_dict()["expected"] == ["in_progress"]

    def test_validation_joins_errors(self):
        error = ValidationError(["Title is required", "Price must be positive"])

        assert str(error) == "Validation failed: Title is required; Price must be positive"
        assert error.to_dict()["errors"] == ["Title is required", "Price must be positive"]

    def test_database_error_keeps_original(self):
        original = RuntimeError("disk I/O error")
        error = DatabaseError("complete_order failed", original_error=original)

        assert error.original_error is original
        assert str(error) == "Database error: complete_order failed"


class TestPagination:
    def test_offset(self):
        assert PaginationParams(page=1, per_page=20).offset() == 0
        assert PaginationParams(page=3, per_page=25).offset() == 50

    @pytest.mark.parametrize("page, per_page", [(0, 20), (1, 0), (1, 101)])
    def test_invalid_params(self, page, per_page):
        with pytest.raises(ValueError):
            PaginationParams(page=page, per_page=per_page)

    def test_result_pages(self):
        result = PaginatedResult(items=[1, 2], total=5, page=2, per_page=2)

        assert result.pages == 3
        assert result.has_next is True
        assert result.has_prev is True

    def test_empty_result(self):
        result = PaginatedResult(items=[], total=0, page=1, per_page=20)

        assert result.pages == 1
        assert result.has_next is False
        assert result.has_prev is False
