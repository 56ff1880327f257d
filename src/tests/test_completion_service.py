"""Tests for completion_service.py.

Tests cover:
- Completion, escrow release and the seller completed_tasks counter
- Customer/seller cancellation and the terminal-state rules
- Administrative cancellation with audit entries
- Escrow refunds
- Concurrent completions on a file-backed database
"""

import pytest

from src.models import AuditLogEntry, OrderStatus
from src.services import (
    audit_service,
    completion_service,
    delivery_service,
    order_service,
    party_service,
)
from src.services.database import session_scope
from src.services.exceptions import (
    AuthorizationError,
    InvalidStateError,
    InvalidTransitionError,
    ValidationError,
)


class TestCompleteOrder:
    """Tests for complete_order()."""

    def test_completes_and_releases_escrow(self, marketplace, order_factory, notifier):
        m = marketplace
        order_id = order_factory(OrderStatus.DELIVERED)

        order = completion_service.complete_order(order_id, m.customer_user_id, notifier=notifier)

        assert order["status"] == "completed"
        assert order["completed_at"] is not None
        assert order["escrow_status"] == "released"
        assert order["released_at"] is not None
        assert party_service.get_seller_stats(m.seller_id)["completed_tasks"] == 1

        assert [n.recipient_user_id for n in notifier.notifications] == [m.seller_user_id]
        assert notifier.notifications[0].title == "Order Completed"

    def test_pending_order_cannot_complete(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory()

        with pytest.raises(InvalidTransitionError) as exc_info:
            completion_service.complete_order(order_id, m.customer_user_id)

        assert exc_info.value.from_status == OrderStatus.PENDING
        assert exc_info.value.to_status == OrderStatus.COMPLETED
        assert "pending -> completed" in str(exc_info.value)
        assert order_service.get_order(order_id)["status"] == "pending"
        assert party_service.get_seller_stats(m.seller_id)["completed_tasks"] == 0

    def test_seller_cannot_complete(self, marketplace, order_factory):
        order_id = order_factory(OrderStatus.DELIVERED)

        with pytest.raises(AuthorizationError):
            completion_service.complete_order(order_id, marketplace.seller_user_id)

    def test_complete_twice(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory(OrderStatus.DELIVERED)
        completion_service.complete_order(order_id, m.customer_user_id)

        with pytest.raises(InvalidTransitionError):
            completion_service.complete_order(order_id, m.customer_user_id)
        assert party_service.get_seller_stats(m.seller_id)["completed_tasks"] == 1

    def test_counter_accumulates(self, marketplace, order_factory):
        m = marketplace
        for _ in range(3):
            completion_service.complete_order(order_factory(OrderStatus.DELIVERED), m.customer_user_id)

        assert party_service.get_seller_stats(m.seller_id)["completed_tasks"] == 3


class TestCancelOrder:
    """Tests for cancel_order()."""

    @pytest.mark.parametrize(
        "status",
        [
            OrderStatus.PENDING,
            OrderStatus.IN_PROGRESS,
            OrderStatus.DELIVERED,
            OrderStatus.REVISION_REQUESTED,
        ],
    )
    def test_customer_cancels_any_non_terminal(self, marketplace, order_factory, status):
        m = marketplace
        order_id = order_factory(status)

        order = completion_service.cancel_order(order_id, m.customer_user_id, "No longer needed")

        assert order["status"] == "cancelled"
        assert order["cancelled_at"] is not None
        assert order["cancelled_by_user_id"] == m.customer_user_id
        assert order["cancellation_reason"] == "No longer needed"
        assert order["escrow_status"] == "held"

    def test_seller_cancels_without_reason(self, marketplace, order_factory, notifier):
        m = marketplace
        order_id = order_factory(OrderStatus.IN_PROGRESS)

        order = completion_service.cancel_order(order_id, m.seller_user_id, notifier=notifier)

        assert order["cancellation_reason"] is None
        assert [n.recipient_user_id for n in notifier.notifications] == [m.customer_user_id]
        assert "seller" in notifier.notifications[0].message

    def test_party_cancel_not_audited(self, marketplace, order_factory):
        order_id = order_factory()
        completion_service.cancel_order(order_id, marketplace.customer_user_id)

        assert audit_service.get_audit_log(entity_id=order_id) == []

    def test_terminal_orders_stay_terminal(self, marketplace, order_factory):
        m = marketplace
        completed_id = order_factory(OrderStatus.DELIVERED)
        completion_service.complete_order(completed_id, m.customer_user_id)
        cancelled_id = order_factory()
        completion_service.cancel_order(cancelled_id, m.seller_user_id)

        for order_id in (completed_id, cancelled_id):
            for actor in (m.customer_user_id, m.seller_user_id):
                with pytest.raises(InvalidTransitionError):
                    completion_service.cancel_order(order_id, actor, "again")
            with pytest.raises(InvalidTransitionError):
                completion_service.cancel_order_admin(order_id, m.admin_user_id, "again")

        assert order_service.get_order(completed_id)["status"] == "completed"
        assert order_service.get_order(cancelled_id)["status"] == "cancelled"

    def test_outsider_cannot_cancel(self, marketplace, order_factory):
        order_id = order_factory()

        with pytest.raises(AuthorizationError):
            completion_service.cancel_order(order_id, marketplace.outsider_user_id, "spam")
        assert order_service.get_order(order_id)["status"] == "pending"

    def test_reason_too_long(self, marketplace, order_factory):
        order_id = order_factory()

        with pytest.raises(ValidationError):
            completion_service.cancel_order(order_id, marketplace.customer_user_id, "x" * 1001)


class TestAdminCancellation:
    """Tests for cancel_order_admin() and admins going through cancel_order()."""

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, marketplace, order_factory, reason):
        order_id = order_factory(OrderStatus.DELIVERED)

        with pytest.raises(ValidationError):
            completion_service.cancel_order_admin(order_id, marketplace.admin_user_id, reason)
        assert order_service.get_order(order_id)["status"] == "delivered"
        assert audit_service.get_audit_log(entity_id=order_id) == []

    def test_cancels_delivered_order_with_audit(self, marketplace, order_factory, notifier):
        m = marketplace
        order_id = order_factory(OrderStatus.DELIVERED)

        order = completion_service.cancel_order_admin(
            order_id, m.admin_user_id, "Policy violation", notifier=notifier
        )

        assert order["status"] == "cancelled"
        assert order["cancellation_reason"] == "Admin Cancelled: Policy violation"
        assert order["cancelled_by_user_id"] == m.admin_user_id

        entries = audit_service.get_audit_log(entity_id=order_id)
        assert len(entries) == 1
        assert entries[0]["action"] == "order_cancelled"
        assert entries[0]["actor_user_id"] == m.admin_user_id
        assert entries[0]["reason"] == "Policy violation"
        assert entries[0]["details"]["from_status"] == "delivered"
        assert entries[0]["created_at"] is not None

        # Neither party initiated it, so both are told
        assert sorted(n.recipient_user_id for n in notifier.notifications) == sorted(
            [m.customer_user_id, m.seller_user_id]
        )

    def test_admin_through_cancel_order(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory(OrderStatus.IN_PROGRESS)

        with pytest.raises(ValidationError):
            completion_service.cancel_order(order_id, m.admin_user_id)

        order = completion_service.cancel_order(order_id, m.admin_user_id, "Fraud")
        assert order["cancellation_reason"] == "Admin Cancelled: Fraud"
        assert len(audit_service.get_audit_log(entity_id=order_id)) == 1

    def test_non_admin_rejected(self, marketplace, order_factory):
        order_id = order_factory()

        for user_id in (marketplace.customer_user_id, marketplace.outsider_user_id):
            with pytest.raises(AuthorizationError) as exc_info:
                completion_service.cancel_order_admin(order_id, user_id, "Because")
            assert exc_info.value.required_role == "admin"

    def test_audit_written_only_with_transition(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory()
        completion_service.cancel_order(order_id, m.customer_user_id)

        with pytest.raises(InvalidTransitionError):
            completion_service.cancel_order_admin(order_id, m.admin_user_id, "Late")

        with session_scope() as session:
            assert session.query(AuditLogEntry).count() == 0


class TestRefundEscrow:
    """Tests for refund_escrow()."""

    def test_refund_cancels_open_order(self, marketplace, order_factory, notifier):
        m = marketplace
        order_id = order_factory(OrderStatus.IN_PROGRESS)

        order = completion_service.refund_escrow(
            order_id, m.admin_user_id, "Seller unresponsive", notifier=notifier
        )

        assert order["status"] == "cancelled"
        assert order["escrow_status"] == "refunded"
        assert order["refunded_at"] is not None
        assert order["cancellation_reason"] == "Admin Cancelled: Seller unresponsive"

        entries = audit_service.get_audit_log(entity_id=order_id, action="escrow_refunded")
        assert len(entries) == 1
        assert entries[0]["reason"] == "Seller unresponsive"
        assert entries[0]["details"]["total_amount"] == "1000.00"
        assert entries[0]["details"]["cancelled"] is True

        titles = {n.recipient_user_id: n.title for n in notifier.notifications}
        assert titles == {m.customer_user_id: "Escrow Refunded", m.seller_user_id: "Order Cancelled"}

    def test_refund_already_cancelled_order(self, marketplace, order_factory, notifier):
        m = marketplace
        order_id = order_factory()
        completion_service.cancel_order(order_id, m.customer_user_id, "Ordered by mistake")

        order = completion_service.refund_escrow(
            order_id, m.admin_user_id, "Customer cancelled", notifier=notifier
        )

        assert order["status"] == "cancelled"
        assert order["escrow_status"] == "refunded"
        # Original cancellation is kept
        assert order["cancellation_reason"] == "Ordered by mistake"
        assert [n.title for n in notifier.notifications] == ["Escrow Refunded"]

    def test_refund_twice(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory()
        completion_service.refund_escrow(order_id, m.admin_user_id, "First")

        with pytest.raises(InvalidStateError):
            completion_service.refund_escrow(order_id, m.admin_user_id, "Second")
        assert len(audit_service.get_audit_log(entity_id=order_id)) == 1

    def test_released_escrow_cannot_be_refunded(self, marketplace, order_factory):
        m = marketplace
        order_id = order_factory(OrderStatus.DELIVERED)
        completion_service.complete_order(order_id, m.customer_user_id)

        with pytest.raises(InvalidStateError):
            completion_service.refund_escrow(order_id, m.admin_user_id, "Too late")
        assert order_service.get_order(order_id)["escrow_status"] == "released"

    def test_admin_only(self, marketplace, order_factory):
        order_id = order_factory()

        with pytest.raises(AuthorizationError):
            completion_service.refund_escrow(order_id, marketplace.customer_user_id, "Please")

    def test_reason_required(self, marketplace, order_factory):
        order_id = order_factory()

        with pytest.raises(ValidationError):
            completion_service.refund_escrow(order_id, marketplace.admin_user_id, " ")
        assert order_service.get_order(order_id)["escrow_status"] == "held"


class TestConcurrentCompletion:
    """Completions racing on separate threads against a file database."""

    def test_two_orders_same_seller_both_counted(
        self, file_marketplace, file_order_factory, run_concurrently
    ):
        m = file_marketplace
        first = file_order_factory(OrderStatus.DELIVERED)
        second = file_order_factory(OrderStatus.DELIVERED)

        outcomes = run_concurrently(
            lambda: completion_service.complete_order(first, m.customer_user_id),
            lambda: completion_service.complete_order(second, m.customer_user_id),
        )

        assert [o["status"] for o in outcomes] == ["completed", "completed"]
        assert party_service.get_seller_stats(m.seller_id)["completed_tasks"] == 2

    def test_same_order_completes_once(
        self, file_marketplace, file_order_factory, run_concurrently
    ):
        m = file_marketplace
        order_id = file_order_factory(OrderStatus.DELIVERED)

        outcomes = run_concurrently(
            lambda: completion_service.complete_order(order_id, m.customer_user_id),
            lambda: completion_service.complete_order(order_id, m.customer_user_id),
        )

        successes = [o for o in outcomes if isinstance(o, dict)]
        failures = [o for o in outcomes if isinstance(o, InvalidTransitionError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert failures[0].from_status == OrderStatus.COMPLETED
        assert party_service.get_seller_stats(m.seller_id)["completed_tasks"] == 1

    def test_cancel_races_delivery(
        self, file_marketplace, file_order_factory, run_concurrently
    ):
        m = file_marketplace
        order_id = file_order_factory(OrderStatus.IN_PROGRESS)

        outcomes = run_concurrently(
            lambda: completion_service.cancel_order(order_id, m.customer_user_id, "Too slow"),
            lambda: delivery_service.submit_delivery(order_id, m.seller_user_id, "Done"),
        )

        winners = [o for o in outcomes if isinstance(o, dict)]
        losers = [o for o in outcomes if isinstance(o, (InvalidTransitionError, InvalidStateError))]
        assert len(winners) == 1
        assert len(losers) == 1

        final = order_service.get_order(order_id)["status"]
        assert final in ("cancelled", "delivered")
        if final == "cancelled":
            # The losing delivery rolled back with its status change
            assert delivery_service.list_deliveries(order_id) == []
