"""
Engine, session factory and transaction scope for the Gig Orders engine.

Every service function either receives a session from its caller or opens
one through session_scope(), which commits when the block finishes and rolls
back when it raises. Status changes rely on that: the compare-and-swap
UPDATE, the rows written next to it and the audit entry all share one
transaction.

SQLite connections get foreign keys, WAL journaling and a busy timeout so
concurrent writers queue on the database lock instead of failing at once.
"""

from typing import Optional
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

ORDER_TABLES = ("orders", "order_deliveries", "order_revisions", "audit_log_entries")
SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Apply SQLite pragmas to each new DBAPI connection; other drivers are skipped."""
    if "sqlite" not in type(dbapi_connection).__module__:
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """
    Build an engine for ``database_url`` (the configured database when None).

    In-memory SQLite keeps a single shared connection so every session sees
    the same data; file SQLite gets a busy timeout; any other backend is
    passed through with pre-ping enabled.
    """
    if database_url is None:
        config = get_config()
        config.ensure_directories()
        database_url = config.database_url

    logger.info(f"Creating database engine: {database_url}")

    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    if ":memory:" in database_url or "mode=memory" in database_url:
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """Create any missing tables on ``engine`` (the global engine when None)."""
    if engine is None:
        engine = get_engine()

    # Registers every model with Base.metadata
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info("Order tables created")


def get_engine(force_recreate: bool = False) -> Engine:
    """Process-wide engine, created from the configuration on first use."""
    global _engine

    if _engine is None or force_recreate:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Process-wide session factory bound to get_engine().

    Sessions keep loaded attributes after commit (expire_on_commit=False) so
    services can build their return dictionaries after the transaction ends.
    """
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """New session from the factory; the caller commits and closes it."""
    return get_session_factory()()


@contextmanager
def session_scope():
    """
    One transaction: commit on success, roll back on any exception.

    Yields:
        Database session

    Example:
        with session_scope() as session:
            order = get_order_or_raise(order_id, session)
            compare_and_set_status(session, order, OrderStatus.DELIVERED, OrderStatus.COMPLETED)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def verify_database() -> bool:
    """True when the engine is reachable and every order table exists."""
    try:
        tables = inspect(get_engine()).get_table_names()
    except Exception as e:
        logger.error(f"Database verification failed: {e}")
        return False
    return all(table in tables for table in ORDER_TABLES)


def close_connections() -> None:
    """Dispose of the global engine and forget the session factory."""
    global _engine, _SessionFactory

    _SessionFactory = None
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database connections closed")


def initialize_app_database() -> None:
    """Create the configured database's tables and check they are in place."""
    config = get_config()
    action = "Using existing" if config.database_exists() else "Creating new"
    logger.info(f"{action} database at: {config.database_url}")

    init_database(get_engine())

    if not verify_database():
        logger.warning("Database verification failed - order tables are missing")
