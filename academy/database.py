import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from academy.config import settings
from academy.services.errors import TransactionConflict

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}

T = TypeVar("T")

# Create engine with connection pooling
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using them
    pool_size=10,
    max_overflow=20,
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI routes to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def is_retryable(exc: OperationalError) -> bool:
    """True when the store aborted the transaction because of a concurrent writer."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in RETRYABLE_SQLSTATES:
        return True
    # SQLite reports lock contention only through the message
    return "database is locked" in str(orig or exc)


def run_transaction(
    db: Session,
    fn: Callable[[Session], T],
    max_retries: Optional[int] = None,
) -> T:
    """
    Run fn(db) as one atomic unit and commit.

    fn must read every row it depends on itself (locking where it mutates),
    since a retry replays it from scratch against fresh state. Any failure
    rolls back everything fn wrote.
    """
    attempts = max_retries or settings.transaction_max_retries
    for attempt in range(1, attempts + 1):
        try:
            result = fn(db)
            db.commit()
            return result
        except OperationalError as e:
            db.rollback()
            if not is_retryable(e):
                raise
            logger.warning("Transaction conflict (attempt %d/%d): %s", attempt, attempts, e.orig)
        except Exception:
            db.rollback()
            raise
    raise TransactionConflict(f"Concurrent modification, gave up after {attempts} attempts")
