"""
Advisory locking for same-user / same-session races
"""
import logging
from typing import Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.database import is_postgres, transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceLock:
    """
    Name-scoped mutual exclusion backed by PostgreSQL advisory locks

    Locks are transaction-scoped (pg_advisory_xact_lock), so they are released
    by the commit or rollback that ends the unit of work, on success and on
    failure alike. Other dialects have no advisory locks; there the store's
    own write lock serializes writers and acquisition is a no-op.
    """

    def __init__(self, db: Session):
        self.db = db

    def acquire(self, key: str) -> None:
        """Block until the lock for key is held by the current transaction"""
        if not is_postgres(self.db):
            return
        self.db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        logger.debug(f"Advisory lock acquired: {key}")

    def with_lock(self, key: str, fn: Callable[[], T]) -> T:
        """
        Run fn inside a serializable transaction that holds the lock for key

        Args:
            key: Lock name, e.g. "session:<id>"
            fn: Unit of work; its return value is returned after commit

        Returns:
            Result of fn
        """
        with transaction(self.db, serializable=True):
            self.acquire(key)
            return fn()
