"""
Module: commission_kernel.db.engine
Responsibility: Engine initialization, session factory management and the
    transactional scope helper.  Single point of database connection
    configuration for the whole system.
Architecture position: Kernel > DB.  May import db/base.py and
    db/immutability.py.  MUST NOT import services/, selectors/ or outer
    packages (create_tables imports models lazily so metadata is complete).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) on Partner balance reads.
    - SQLite (tests, local tooling) has no row locks; the Partner ``version``
      column and the busy timeout serialize writers instead.
    - ORM immutability and balance-ownership listeners are registered
      whenever an engine is initialized.
    - Sessions never expire on commit, so DTOs built after commit do not
      trigger lazy reloads.

Failure modes:
    - RuntimeError if get_engine/get_session_factory is called
      before init_engine_from_url().
    - OperationalError on connection failure surfaces from the first query;
      the transaction runner classifies it.

Audit relevance:
    Every ledger write runs in a session created by the factory held here;
    the transaction runner decides when it commits.
"""

import atexit

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from commission_kernel.db.immutability import register_immutability_listeners
from commission_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    lock_timeout_seconds: float = 10.0,
) -> Engine:
    """
    Initialize the engine and session factory from a database URL.

    Args:
        database_url: ``postgresql://...`` or ``sqlite:///path.db``.
        echo: Log all SQL statements.
        pool_size / max_overflow / pool_timeout / pool_recycle: pool sizing.
        pool_pre_ping: Test connections before use.
        lock_timeout_seconds: SQLite busy timeout.  PostgreSQL lock timeouts
            are applied per transaction by the transaction runner.

    Returns:
        The initialized Engine.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    dialect = url.get_backend_name()

    if dialect == "sqlite":
        _engine = create_engine(
            url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            connect_args={
                "check_same_thread": False,
                "timeout": lock_timeout_seconds,
            },
        )
    else:
        _engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    register_immutability_listeners()
    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "echo": echo,
        },
    )

    return _engine


def get_engine() -> Engine:
    """Get the current engine.  Raises RuntimeError if uninitialized."""
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    The transaction runner and reporting service take the factory rather
    than a session: each attempt and each read gets a fresh session.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def create_tables() -> None:
    """Create all tables for the commission ledger models."""
    from commission_kernel.db.base import Base
    import commission_kernel.models  # noqa: F401  (populates Base.metadata)

    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop all tables.  Primarily for testing."""
    from commission_kernel.db.base import Base
    import commission_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


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


def is_postgres(session_or_engine=None) -> bool:
    """True when the given session/engine (or the global engine) is PostgreSQL."""
    target = session_or_engine if session_or_engine is not None else _engine
    if target is None:
        return False
    bind = target.get_bind() if isinstance(target, Session) else target
    return bind.dialect.name == "postgresql"
