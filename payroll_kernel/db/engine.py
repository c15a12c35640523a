"""
Module: payroll_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  Single point of database connection
    configuration for the payroll engine.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/ or outer layers (create_tables imports
    models lazily so every table is registered on Base.metadata).

Invariants enforced:
    - Sessions are created with expire_on_commit=False so DTOs can be built
      after the transaction closes.
    - session_scope() commits on success and rolls back on any exception.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from payroll_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_pre_ping: bool = True,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    An in-memory SQLite URL gets a StaticPool so every session sees the same
    database; any other URL uses the dialect's default pool.

    Args:
        database_url: SQLAlchemy connection URL.
        echo: If True, log all SQL statements.
        pool_pre_ping: If True, test connections before use.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    kwargs: dict = {"echo": echo, "pool_pre_ping": pool_pre_ping}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}

    _engine = create_engine(database_url, **kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )

    return _engine


def get_engine() -> Engine:
    """Return the initialized engine."""
    if _engine is None:
        raise RuntimeError(
            "Database engine not initialized. Call init_engine_from_url() first."
        )
    return _engine


def get_session() -> Session:
    """Create a new session from the module-level factory."""
    if _SessionFactory is None:
        raise RuntimeError(
            "Session factory not initialized. Call init_engine_from_url() first."
        )
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    if _SessionFactory is None:
        raise RuntimeError(
            "Session factory not initialized. Call init_engine_from_url() first."
        )
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            PayrollRepository(session).save_cycle(cycle, step)
            # Commits on successful exit, rolls back on exception
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


def create_tables(engine: Engine | None = None) -> None:
    """Create all payroll tables on ``engine`` (default: the module engine)."""
    from payroll_kernel.db.base import Base
    import payroll_batch.models  # noqa: F401  (registers every model)
    import payroll_kernel.models  # noqa: F401

    target = engine or get_engine()
    Base.metadata.create_all(target)
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    from payroll_kernel.db.base import Base

    target = engine or get_engine()
    Base.metadata.drop_all(target)
    logger.info("tables_dropped")


def reset_engine() -> None:
    """Dispose the engine and forget the session factory. FOR TESTING ONLY."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
