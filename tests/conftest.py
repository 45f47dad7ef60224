"""
Pytest configuration and fixtures for payroll tests.
"""

import os
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from python.payroll.tax_rates import TaxRateSet

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config_dir() -> Path:
    """Return the config directory path."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def default_rates() -> TaxRateSet:
    """Rate set with the statutory defaults and default APIT table."""
    return TaxRateSet()


@pytest.fixture
def sample_employee_row() -> dict:
    """Return a stored employee row for testing."""
    return {
        "id": 1,
        "employee_id": "EMP001",
        "full_name": "Nimal Perera",
        "basic_salary": Decimal("150000.00"),
        "transport_allowance": Decimal("10000.00"),
        "performance_salary_probation": Decimal("5000.00"),
        "performance_salary_confirmed": Decimal("15000.00"),
        "probation_end_date": None,
        "status": "confirmed",
        "apit_scenario": "employee",
        "epf_employee_rate": None,
        "epf_employer_rate": None,
        "etf_rate": None,
    }


@pytest.fixture
def sample_employee_rows(sample_employee_row: dict) -> list[dict]:
    """Return several stored employee rows, one of them closed."""
    return [
        sample_employee_row,
        {
            "id": 2,
            "employee_id": "EMP002",
            "full_name": "Kamala Silva",
            "basic_salary": 200000,
            "transport_allowance": 20000,
            "performance_salary_probation": 0,
            "performance_salary_confirmed": 0,
            "probation_end_date": date(2025, 3, 31),
            "status": "under_probation",
            "apit_scenario": "employer",
            "epf_employee_rate": None,
            "epf_employer_rate": None,
            "etf_rate": None,
        },
        {
            "id": 3,
            "employee_id": "EMP003",
            "full_name": "Ruwan Fernando",
            "basic_salary": 90000,
            "transport_allowance": 0,
            "performance_salary_probation": 0,
            "performance_salary_confirmed": 0,
            "probation_end_date": None,
            "status": "closed",
            "apit_scenario": None,
            "epf_employee_rate": None,
            "epf_employer_rate": None,
            "etf_rate": None,
        },
    ]



class FakeSession:
    """Database session stand-in that records statements.

    Counter upserts return increasing values per counter name, other inserts
    return a new id, and any other statement returns the rows registered in
    rows_for under its leading SQL text.
    """

    def __init__(self):
        self.statements: list[tuple[str, dict]] = []
        self.counters: dict[str, int] = {}
        self.rows_for: dict[str, list[dict]] = {}
        self.fail_on_serial: str | None = None
        self.commit = Mock()
        self.rollback = Mock()
        self.close = Mock()

    def execute(self, statement, params=None):
        sql = " ".join(str(statement).split())
        params = params or {}

        if self.fail_on_serial and params.get("serial_number") == self.fail_on_serial:
            raise RuntimeError("insert failed")
        self.statements.append((sql, params))

        if sql.startswith("INSERT INTO counters"):
            name = params["name"]
            self.counters[name] = self.counters.get(name, 0) + 1
            rows = [{"value": self.counters[name]}]
        elif sql.startswith("INSERT INTO"):
            rows = [{"id": len(self.statements)}]
        else:
            rows = next(
                (r for prefix, r in self.rows_for.items() if sql.startswith(prefix)), []
            )

        result = Mock(returns_rows=True)
        result.keys.return_value = list(rows[0].keys()) if rows else []
        result.fetchall.return_value = [tuple(row.values()) for row in rows]
        return result

    def inserts(self) -> list[tuple[str, dict]]:
        """Table name and values of every non-counter insert, in order."""
        return [
            (sql.split()[2], params)
            for sql, params in self.statements
            if sql.startswith("INSERT INTO") and not sql.startswith("INSERT INTO counters")
        ]

    def sql(self) -> list[str]:
        return [sql for sql, _ in self.statements]


@pytest.fixture
def db_session() -> FakeSession:
    """Route every database session through a FakeSession."""
    session = FakeSession()

    @contextmanager
    def session_context():
        yield session

    with patch("python.api.database.get_db_context", session_context):
        yield session


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.setdefault("ENVIRONMENT", "development")
    os.environ.setdefault("POSTGRES_HOST", "localhost")
    os.environ.setdefault("POSTGRES_DB", "payroll_test")
    yield
