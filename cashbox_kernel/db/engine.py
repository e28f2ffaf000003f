"""
Module: cashbox_kernel.db.engine
Responsibility: Engine construction and transactional scope for the archive
    and key-value tables.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/ or domain/ (create_tables imports the
    models package lazily so Base.metadata is populated).

Invariants enforced:
    - SQLite and PostgreSQL are both supported.  In-memory SQLite uses a
      StaticPool so every session sees the same database.
    - session_scope() commits on success and rolls back on any exception.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cashbox_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite URLs get ``check_same_thread=False``; in-memory SQLite additionally
    uses StaticPool so the single connection (and its data) is shared.
    PostgreSQL URLs get pre-ping and connection recycling.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_recycle=1800,
        )

    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Sessions keep loaded attributes after commit; stores return DTOs built from them."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = factory()
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


def create_tables(engine: Engine) -> None:
    """Create the archive and key-value tables if they do not exist."""
    from cashbox_kernel.db.base import Base
    import cashbox_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(engine)


def drop_tables(engine: Engine) -> None:
    """Drop all tables. Testing only."""
    from cashbox_kernel.db.base import Base
    import cashbox_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)
