"""
Database engine, session factory and transaction helpers
"""
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import settings
from app.exceptions import StateConflict

logger = logging.getLogger(__name__)

# SQLSTATEs raised by PostgreSQL when it aborts one of two conflicting transactions
CONFLICT_SQLSTATES = {"40001", "40P01"}

engine = create_engine(settings.DATABASE_URL, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency yielding one database session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables"""
    # Import models so they register on the metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def is_postgres(db: Session) -> bool:
    return db.get_bind().dialect.name == "postgresql"


def _sqlstate(exc: DBAPIError):
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


@contextmanager
def transaction(db: Session, serializable: bool = False):
    """
    Run a unit of work and commit it, rolling back on any failure

    Args:
        db: Session with no transaction in progress when serializable is requested
        serializable: Run under SERIALIZABLE isolation (PostgreSQL only)

    Raises:
        StateConflict: the store aborted the transaction as a serialization
            failure or deadlock
    """
    if serializable and is_postgres(db) and not db.in_transaction():
        db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

    try:
        yield db
        db.commit()
    except DBAPIError as exc:
        db.rollback()
        if _sqlstate(exc) in CONFLICT_SQLSTATES:
            logger.warning(f"Transaction aborted by the store: {exc.orig}")
            raise StateConflict("Concurrent update detected, please retry") from exc
        raise
    except Exception:
        db.rollback()
        raise
