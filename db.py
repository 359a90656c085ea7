import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import DB_RETRY_BACKOFF_SECONDS, DB_RETRY_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Read DATABASE_URL from environment
DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

# Dokku Postgres and many Heroku style services use the older
# 'postgres://' scheme. SQLAlchemy 2 prefers 'postgresql+psycopg2://'.
# Normalize it here so the dialect loads correctly.
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg2://", 1)

# Create the engine
if DATABASE_URL.startswith("sqlite"):
    # In-memory SQLite must share one connection across threads or every
    # session sees an empty database.
    in_memory = DATABASE_URL in ("sqlite://", "sqlite:///:memory:")
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool if in_memory else None,
        future=True,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        future=True,
    )

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for your models
Base = declarative_base()


# =====================================================================
# SECTION: RETRY POLICY
# =====================================================================

_RETRYABLE_MESSAGES = (
    "connection pool timeout",
    "server closed the connection unexpectedly",
)


def is_retryable_db_error(exc: Exception) -> bool:
    """Connection-level failures are worth another attempt, constraint errors are not."""
    if isinstance(exc, (OperationalError, DisconnectionError)):
        return True
    message = str(exc).lower()
    if "prepared statement" in message and "already exists" in message:
        return True
    return any(m in message for m in _RETRYABLE_MESSAGES)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DB_RETRY_MAX_ATTEMPTS
    backoff_seconds: float = DB_RETRY_BACKOFF_SECONDS
    is_retryable: Callable[[Exception], bool] = field(default=is_retryable_db_error)

    def delay_for(self, attempt: int) -> float:
        # 0.5s, 1s, 2s, ...
        return self.backoff_seconds * (2 ** attempt)


DEFAULT_RETRY_POLICY = RetryPolicy()


def with_retry(operation: Callable[[], T], policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> T:
    """
    Run operation, retrying retryable errors with exponential backoff.
    Non-retryable errors and the last retryable one are re-raised.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return operation()
        except Exception as e:
            if not policy.is_retryable(e) or attempt == attempts - 1:
                raise
            logger.warning(f"[db] retrying database operation ({attempt + 1}/{attempts}): {e}")
            time.sleep(policy.delay_for(attempt))
    raise RuntimeError("unreachable")
