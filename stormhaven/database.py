"""Database connection, session management and query execution."""

import logging
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.sql import Executable

from .config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url

engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)


# =============================================================================
# Query results
# =============================================================================


@dataclass(frozen=True)
class QueryOk:
    """Rows returned by a successful query."""
    rows: list[dict[str, Any]]


@dataclass(frozen=True)
class QueryError:
    """A query that failed; `reason` is safe to show to API callers."""
    reason: str


QueryResult = QueryOk | QueryError


def fetch_rows(db: Session, statement: Executable, label: str = "query") -> QueryResult:
    """Execute a read-only statement and return its rows as plain dicts.

    Database errors are logged and returned as a `QueryError` so that the
    HTTP layer decides how to present them.
    """
    try:
        result = db.execute(statement)
        rows = [dict(row) for row in result.mappings()]
    except SQLAlchemyError as e:
        logger.exception(f"{label} failed: {e}")
        db.rollback()
        return QueryError(reason=f"{label} failed: {e.__class__.__name__}")

    logger.info(f"{label} returned {len(rows)} rows")
    return QueryOk(rows=rows)
