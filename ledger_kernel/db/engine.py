"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory management,
    and transactional scope utilities.  The single point of database
    connection configuration for the kernel.
Architecture position: Kernel > DB.  May import from db/base.py,
    db/immutability.py and db/triggers.py.  MUST NOT import from
    services/, selectors/ or domain/ (create_tables imports models lazily so
    their tables register).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) on the sequence counter and company rows.
    - SQLite starts every transaction with BEGIN IMMEDIATE so writers are
      serialised and SAVEPOINT works through the pysqlite driver.  Foreign
      keys are switched on for every connection.
    - Immutability listeners are registered whenever an engine is
      initialised through init_engine_from_url().
    - On PostgreSQL, create_tables() also installs the immutability
      triggers (db/triggers.py), so Core statements that bypass the ORM
      listeners are still refused.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - OperationalError ("database is locked") if an SQLite writer waits
      longer than the busy timeout.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Take over transaction control from pysqlite.

    pysqlite issues its own BEGIN lazily and does not understand
    SAVEPOINT; disabling that and emitting BEGIN IMMEDIATE ourselves gives
    proper nested transactions and one writer at a time.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for database_url without touching module state.

    PostgreSQL URLs get a QueuePool at READ COMMITTED.  SQLite URLs get the
    transaction hooks above; in-memory databases share one connection
    through StaticPool so every session sees the same data.

    Args:
        database_url: SQLAlchemy URL (postgresql://..., sqlite+pysqlite:///...).
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections allowed beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        engine = create_engine(
            url,
            echo=echo,
            poolclass=StaticPool if in_memory else QueuePool,
            connect_args={
                "check_same_thread": False,
                "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
            },
        )
        _install_sqlite_transaction_hooks(engine)
        return engine

    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    Preconditions: database_url is a PostgreSQL or SQLite URL.  A second
        call replaces the first engine.
    Postconditions: get_engine/get_session use the new engine and the
        immutability listeners are registered.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = build_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    from ledger_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.  Each thread should create its own session.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit the session is committed and closed.
        On exception it is rolled back, closed, and the exception is
        re-raised.  An abandoned scope therefore leaves no partial rows.

    Usage:
        with session_scope() as session:
            LedgerOrchestrator(session, auto_commit=False).post_entry(...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def is_postgres(engine: Engine | None = None) -> bool:
    """Check if engine (default: the module-level engine) is PostgreSQL."""
    engine = engine if engine is not None else _engine
    if engine is None:
        return False
    return engine.dialect.name == "postgresql"


def create_tables(engine: Engine | None = None, install_triggers: bool = True) -> None:
    """
    Create all ledger tables.

    On PostgreSQL the immutability triggers are installed as well, unless
    install_triggers is False.

    Args:
        engine: Target engine; defaults to the module-level engine.
        install_triggers: Install the database-level immutability triggers.
    """
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(engine)

    if install_triggers and is_postgres(engine):
        from ledger_kernel.db.triggers import install_immutability_triggers

        install_immutability_triggers(engine)


def drop_tables(engine: Engine | None = None) -> None:
    """Drop all ledger tables and, on PostgreSQL, the trigger functions.  Primarily for tests."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    engine = engine or get_engine()
    if is_postgres(engine):
        from ledger_kernel.db.triggers import uninstall_immutability_triggers

        uninstall_immutability_triggers(engine)
    Base.metadata.drop_all(engine)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
