"""
Database Connection Module

Provides PostgreSQL database connection and session management.
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from ..payroll.payroll_run import format_sequence

# Database URL from environment
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('POSTGRES_USER', 'payroll')}:"
    f"{os.getenv('POSTGRES_PASSWORD', 'password')}@"
    f"{os.getenv('POSTGRES_HOST', 'localhost')}:"
    f"{os.getenv('POSTGRES_PORT', '5432')}/"
    f"{os.getenv('POSTGRES_DB', 'payroll')}"
)

SEQUENCE_QUERY = """
    INSERT INTO counters (name, value)
    VALUES (:name, 1)
    ON CONFLICT (name) DO UPDATE SET value = counters.value + 1
    RETURNING value
"""

# Engine is created lazily so that importing the API does not need a driver
_engine = None
_session_factory = None


def get_engine():
    """Get (and create on first use) the SQLAlchemy engine."""
    global _engine, _session_factory

    if _engine is None:
        _engine = create_engine(
            DATABASE_URL,
            pool_pre_ping=True,
        )
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    return _engine


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Get database session as context manager.

    Yields:
        Database session
    """
    get_engine()
    db = _session_factory()
    try:
        yield db
    finally:
        db.close()


def _fetch(db: Session, query: str, params: dict | None = None) -> list[dict]:
    result = db.execute(text(query), params or {})

    if not result.returns_rows:
        return []

    columns = result.keys()
    return [dict(zip(columns, row)) for row in result.fetchall()]


def _insert_statement(table: str, data: dict, returning: str) -> str:
    columns = ", ".join(data.keys())
    placeholders = ", ".join(f":{k}" for k in data.keys())
    return f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING {returning}"


def execute_query(query: str, params: dict | None = None) -> list[dict]:
    """Execute raw SQL query and return results as dictionaries.

    Args:
        query: SQL query string
        params: Query parameters

    Returns:
        List of result dictionaries
    """
    with get_db_context() as db:
        rows = _fetch(db, query, params)
        # INSERT ... RETURNING returns rows and still needs a commit
        db.commit()
        return rows


def execute_insert(
    table: str,
    data: dict,
    returning: str = "id",
) -> dict | None:
    """Execute INSERT and return the inserted row.

    Args:
        table: Table name
        data: Column-value dictionary
        returning: Column to return (default: id)

    Returns:
        Inserted row or None
    """
    results = execute_query(_insert_statement(table, data, returning), data)
    return results[0] if results else None


def next_sequence(name: str, prefix: str) -> str:
    """Increment a named counter and return the formatted document number.

    Args:
        name: Counter name ('payroll', 'payrollrun')
        prefix: Number prefix ('PAY', 'RUN')

    Returns:
        Document number such as PAY_001
    """
    result = execute_query(SEQUENCE_QUERY, {"name": name})
    return format_sequence(prefix, int(result[0]["value"]))


class Transaction:
    """Statements sharing one session, committed together."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, query: str, params: dict | None = None) -> list[dict]:
        return _fetch(self.db, query, params)

    def insert(self, table: str, data: dict, returning: str = "id") -> dict | None:
        results = self.execute(_insert_statement(table, data, returning), data)
        return results[0] if results else None

    def next_sequence(self, name: str, prefix: str) -> str:
        result = self.execute(SEQUENCE_QUERY, {"name": name})
        return format_sequence(prefix, int(result[0]["value"]))


@contextmanager
def transaction() -> Generator[Transaction, None, None]:
    """Run several statements in a single transaction.

    Commits when the block exits normally and rolls back if it raises,
    so counters and rows written inside the block are kept or discarded
    together.

    Yields:
        Transaction bound to a fresh session
    """
    with get_db_context() as db:
        try:
            yield Transaction(db)
            db.commit()
        except Exception:
            db.rollback()
            raise
