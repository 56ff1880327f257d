"""Pytest configuration and fixtures for service layer tests."""

import threading
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker, scoped_session

from src.models import OrderStatus, PackageTier
from src.models.base import Base
from src.services.database import create_database_engine
from src.services.notification_service import RecordingNotificationEmitter


def _patched_database(engine):
    """Create tables on ``engine`` and route session_scope() to it."""
    import src.services.database as db_module

    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    original_get_session_factory = db_module.get_session_factory
    db_module.get_session_factory = lambda: Session
    return Session, original_get_session_factory


def _restore_database(engine, Session, original_get_session_factory):
    import src.services.database as db_module

    Session.remove()
    Base.metadata.drop_all(engine)
    engine.dispose()
    db_module.get_session_factory = original_get_session_factory


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean in-memory database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Points the service layer's session factory at it
    4. Drops all tables after the test completes
    """
    engine = create_database_engine("sqlite:///:memory:")
    Session, original = _patched_database(engine)

    yield Session

    _restore_database(engine, Session, original)


@pytest.fixture(scope="function")
def file_db(tmp_path):
    """File-backed database for tests that run services on several threads.

    scoped_session hands each thread its own session and connection, so
    concurrent transactions really contend on the database file.
    """
    engine = create_database_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    Session, original = _patched_database(engine)

    yield Session

    _restore_database(engine, Session, original)


@pytest.fixture
def notifier():
    """In-memory emitter that records every notification."""
    return RecordingNotificationEmitter()


def _build_marketplace():
    """Customer, seller, admin, outsider and one active gig with two packages."""
    from src.services import catalog_service, party_service

    customer_user = party_service.create_user("buyer@example.com", "Buyer")
    seller_user = party_service.create_user("seller@example.com", "Seller")
    admin_user = party_service.create_user("admin@example.com", "Admin", is_admin=True)
    outsider_user = party_service.create_user("outsider@example.com", "Outsider")

    customer = party_service.create_customer_profile(customer_user["id"])
    seller = party_service.create_seller_profile(seller_user["id"])
    # Outsider is also a customer, of nobody's orders here
    party_service.create_customer_profile(outsider_user["id"])

    gig = catalog_service.create_gig(seller["id"], "Logo design")
    basic = catalog_service.add_package(
        gig["id"], PackageTier.BASIC, "Basic", "1000", delivery_days=3, revisions=1
    )
    premium = catalog_service.add_package(
        gig["id"], PackageTier.PREMIUM, "Premium", "2500.50", delivery_days=7, revisions=None
    )

    return SimpleNamespace(
        customer_user_id=customer_user["id"],
        seller_user_id=seller_user["id"],
        admin_user_id=admin_user["id"],
        outsider_user_id=outsider_user["id"],
        customer_id=customer["id"],
        seller_id=seller["id"],
        gig_id=gig["id"],
        basic_package_id=basic["id"],
        premium_package_id=premium["id"],
    )


@pytest.fixture
def marketplace(test_db):
    """Parties and a purchasable gig in the in-memory database."""
    return _build_marketplace()


@pytest.fixture
def file_marketplace(file_db):
    """Parties and a purchasable gig in the file-backed database."""
    return _build_marketplace()


def _order_factory(m):
    from src.services import delivery_service, order_service, revision_service

    def create(status=OrderStatus.PENDING, package_id=None):
        """Create an order and drive it to ``status`` through the services."""
        order = order_service.create_order(
            m.customer_user_id,
            m.gig_id,
            package_id or m.basic_package_id,
            {"brand_name": "Acme"},
        )
        order_id = order["id"]
        status = OrderStatus(status)

        if status == OrderStatus.PENDING:
            return order_id
        order_service.accept_order(order_id, m.seller_user_id)
        if status == OrderStatus.IN_PROGRESS:
            return order_id
        delivery_service.submit_delivery(order_id, m.seller_user_id, "First draft")
        if status == OrderStatus.DELIVERED:
            return order_id
        if status == OrderStatus.REVISION_REQUESTED:
            revision_service.request_revision(order_id, m.customer_user_id, "Bigger font")
            return order_id
        raise ValueError(f"order_factory cannot build status {status.value}")

    return create


@pytest.fixture
def order_factory(marketplace):
    """Callable creating an order in a given non-terminal status; returns its id."""
    return _order_factory(marketplace)


@pytest.fixture
def file_order_factory(file_marketplace):
    return _order_factory(file_marketplace)


@pytest.fixture
def run_concurrently():
    """Start every call on its own thread behind a barrier.

    Returns each call's result, or the exception it raised, in call order.
    """

    def run(*calls):
        barrier = threading.Barrier(len(calls))
        outcomes = [None] * len(calls)

        def target(index, call):
            barrier.wait()
            try:
                outcomes[index] = call()
            except Exception as e:
                outcomes[index] = e

        threads = [threading.Thread(target=target, args=(i, c)) for i, c in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return outcomes

    return run
