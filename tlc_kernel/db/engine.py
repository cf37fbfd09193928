"""
Process-wide SQLAlchemy engine for the reconciliation audit log.

The engine imposes no schema on sessions, settlements or audit results;
the only table it creates is ``reconciliation_audit_log``.  Callers that
persist the audit log initialize the engine once with any SQLAlchemy URL
(tests use ``sqlite:///:memory:``) and hand sessions to
``SqlAlchemyAuditLogSink``.

Failure modes:
    - RuntimeError from get_engine()/get_session() before
      init_engine_from_url().
    - session_scope() rolls back and re-raises on any exception, so a failed
      batch never commits a partial log entry.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tlc_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Audit log engine not initialized; call init_engine_from_url() first"


def init_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """Create the engine and session factory, replacing any previous ones."""
    global _engine, _session_factory
    reset_engine()
    _engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session() -> Session:
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit on exit, roll back on error.

        with session_scope() as session:
            SqlAlchemyAuditLogSink(session).append(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("audit_log_transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create the audit-log table and register its immutability listeners."""
    from tlc_kernel.db.base import Base
    from tlc_kernel.db.immutability import register_immutability_listeners
    from tlc_kernel.models import audit_log  # noqa: F401

    Base.metadata.create_all(get_engine())
    register_immutability_listeners()


def drop_tables() -> None:
    from tlc_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
