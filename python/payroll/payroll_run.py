"""
Payroll Run Module

Builds payroll runs from stored employee records. Single calculations, run
previews and run generation all go through compute_payroll() so that the
figures shown before generating a run match the figures that get stored.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable

from .calculator import (
    ApitScenario,
    EmployeeSalaryInput,
    PayrollComputationResult,
    compute_payroll,
    to_decimal,
)
from .tax_rates import TaxRateSet

logger = logging.getLogger(__name__)


class EmployeeStatus(Enum):
    """Employment status."""
    UNDER_PROBATION = "under_probation"
    CONFIRMED = "confirmed"
    CLOSED = "closed"


def format_sequence(prefix: str, value: int) -> str:
    """Format a counter value as a document number, e.g. PAY_007."""
    return f"{prefix}_{value:03d}"


@dataclass
class EmployeeRecord:
    """Stored employee fields the payroll engine reads."""

    employee_id: str
    full_name: str
    basic_salary: Decimal
    transport_allowance: Decimal = Decimal("0")
    performance_salary_probation: Decimal = Decimal("0")
    performance_salary_confirmed: Decimal = Decimal("0")
    probation_end_date: date | None = None
    status: EmployeeStatus = EmployeeStatus.UNDER_PROBATION
    apit_scenario: ApitScenario = ApitScenario.EMPLOYEE
    epf_employee_rate: Decimal | None = None
    epf_employer_rate: Decimal | None = None
    etf_rate: Decimal | None = None
    id: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "EmployeeRecord":
        """Build a record from a database row."""

        def optional_decimal(key: str) -> Decimal | None:
            value = data.get(key)
            return to_decimal(value) if value is not None else None

        probation_end = data.get("probation_end_date")
        if isinstance(probation_end, datetime):
            probation_end = probation_end.date()
        elif isinstance(probation_end, str) and probation_end:
            probation_end = date.fromisoformat(probation_end[:10])

        return cls(
            id=data.get("id"),
            employee_id=str(data.get("employee_id", "")),
            full_name=data.get("full_name", ""),
            basic_salary=to_decimal(data.get("basic_salary", 0)),
            transport_allowance=to_decimal(data.get("transport_allowance") or 0),
            performance_salary_probation=to_decimal(data.get("performance_salary_probation") or 0),
            performance_salary_confirmed=to_decimal(data.get("performance_salary_confirmed") or 0),
            probation_end_date=probation_end or None,
            status=EmployeeStatus(data.get("status") or "under_probation"),
            apit_scenario=ApitScenario.parse(data.get("apit_scenario")),
            epf_employee_rate=optional_decimal("epf_employee_rate"),
            epf_employer_rate=optional_decimal("epf_employer_rate"),
            etf_rate=optional_decimal("etf_rate"),
        )

    def current_performance_salary(self, as_of: date | None = None) -> Decimal:
        """Performance salary applicable on a date.

        Probationers move to the confirmed amount once their probation end
        date has passed, even before their status is updated.
        """
        as_of = as_of or date.today()

        if self.status == EmployeeStatus.CONFIRMED:
            return self.performance_salary_confirmed
        if self.status == EmployeeStatus.UNDER_PROBATION:
            if self.probation_end_date and as_of > self.probation_end_date:
                return self.performance_salary_confirmed
            return self.performance_salary_probation
        return Decimal("0")

    def to_salary_input(
        self,
        as_of: date | None = None,
        extra_allowances: Decimal | int = 0
    ) -> EmployeeSalaryInput:
        allowances = (
            self.current_performance_salary(as_of)
            + self.transport_allowance
            + to_decimal(extra_allowances)
        )
        return EmployeeSalaryInput(
            basic_salary=self.basic_salary,
            allowances=allowances,
            apit_scenario=self.apit_scenario,
            epf_employee_rate=self.epf_employee_rate,
            epf_employer_rate=self.epf_employer_rate,
            etf_rate=self.etf_rate,
        )


@dataclass
class PayrollRunEntry:
    """Computed payroll for one employee within a run."""

    employee: EmployeeRecord
    month: int
    year: int
    result: PayrollComputationResult
    serial_number: str | None = None
    status: str = "draft"

    def to_dict(self) -> dict:
        return {
            "serialNumber": self.serial_number,
            "employeeId": self.employee.employee_id,
            "employeeName": self.employee.full_name,
            "month": self.month,
            "year": self.year,
            "status": self.status,
            **self.result.to_dict(),
        }


@dataclass
class PayrollRunSummary:
    """A payroll run with its entries and totals."""

    month: int
    year: int
    entries: list[PayrollRunEntry] = field(default_factory=list)
    run_number: str | None = None
    status: str = "draft"
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def total_employees(self) -> int:
        return len(self.entries)

    def _total(self, attr: str) -> Decimal:
        return sum((getattr(e.result, attr) for e in self.entries), Decimal("0"))

    @property
    def total_gross_salary(self) -> Decimal:
        return self._total("gross_salary")

    @property
    def total_net_salary(self) -> Decimal:
        return self._total("net_salary")

    @property
    def total_deductions(self) -> Decimal:
        return self._total("total_deductions")

    @property
    def total_ctc(self) -> Decimal:
        return self._total("total_ctc")

    @property
    def total_epf_employee(self) -> Decimal:
        return self._total("epf_employee")

    @property
    def total_epf_employer(self) -> Decimal:
        return self._total("epf_employer")

    @property
    def total_etf(self) -> Decimal:
        return self._total("etf")

    @property
    def total_apit(self) -> Decimal:
        return self._total("apit")

    @property
    def total_apit_employer(self) -> Decimal:
        return self._total("apit_employer")

    def totals(self) -> dict[str, Decimal]:
        """Sum every money column across entries."""
        return {
            "totalGrossSalary": self.total_gross_salary,
            "totalNetSalary": self.total_net_salary,
            "totalDeductions": self.total_deductions,
            "totalCTC": self.total_ctc,
            "totalEpfEmployee": self.total_epf_employee,
            "totalEpfEmployer": self.total_epf_employer,
            "totalEtf": self.total_etf,
            "totalApit": self.total_apit,
            "totalApitEmployer": self.total_apit_employer,
        }

    def to_dict(self) -> dict:
        return {
            "runNumber": self.run_number,
            "month": self.month,
            "year": self.year,
            "status": self.status,
            "totalEmployees": self.total_employees,
            **{k: float(v) for k, v in self.totals().items()},
            "createdAt": self.created_at.isoformat(),
            "entries": [e.to_dict() for e in self.entries],
        }


def calculate_single(
    employee: EmployeeRecord,
    rates: TaxRateSet,
    extra_allowances: Decimal | int = 0,
    apit_scenario: ApitScenario | str | None = None,
    as_of: date | None = None
) -> PayrollComputationResult:
    """Ad-hoc payroll calculation for one employee.

    Args:
        employee: Employee record
        rates: Resolved tax rates
        extra_allowances: One-off allowances added on top of the stored ones
        apit_scenario: Overrides the employee's scenario when given
        as_of: Date used to pick the performance salary

    Returns:
        PayrollComputationResult
    """
    salary = employee.to_salary_input(as_of, extra_allowances)
    if apit_scenario is not None:
        salary.apit_scenario = ApitScenario.parse(apit_scenario)
    return compute_payroll(salary, rates)


def preview_payroll_run(
    employees: Iterable[EmployeeRecord],
    rates: TaxRateSet,
    month: int,
    year: int,
    as_of: date | None = None
) -> PayrollRunSummary:
    """Compute a payroll run without storing anything.

    Closed employees are left out.
    """
    summary = PayrollRunSummary(month=month, year=year)

    for employee in employees:
        if employee.status == EmployeeStatus.CLOSED:
            logger.debug(f"Skipping closed employee {employee.employee_id}")
            continue

        result = compute_payroll(employee.to_salary_input(as_of), rates)
        summary.entries.append(PayrollRunEntry(
            employee=employee,
            month=month,
            year=year,
            result=result,
        ))

    return summary


def generate_payroll_run(
    employees: Iterable[EmployeeRecord],
    rates: TaxRateSet,
    month: int,
    year: int,
    persist_entry: Callable[[PayrollRunEntry], Any],
    next_sequence: Callable[[str, str], str],
    as_of: date | None = None
) -> PayrollRunSummary:
    """Compute and store a payroll run.

    The figures are exactly those of preview_payroll_run() for the same inputs.
    Errors raised while storing an entry propagate to the caller.

    Args:
        employees: Employees to include
        rates: Resolved tax rates
        month: Payroll month (1-12)
        year: Payroll year
        persist_entry: Stores one entry
        next_sequence: Returns the next document number for (counter, prefix)
        as_of: Date used to pick performance salaries

    Returns:
        PayrollRunSummary with run and serial numbers assigned
    """
    summary = preview_payroll_run(employees, rates, month, year, as_of)
    summary.run_number = next_sequence("payrollrun", "RUN")

    entries = []
    for entry in summary.entries:
        entry = replace(entry, serial_number=next_sequence("payroll", "PAY"))
        persist_entry(entry)
        entries.append(entry)
    summary.entries = entries

    logger.info(
        f"Generated payroll run {summary.run_number} for {month:02d}/{year}: "
        f"{summary.total_employees} employees, gross {summary.total_gross_salary:,.2f}"
    )

    return summary
