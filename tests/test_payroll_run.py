"""
Tests for Payroll Runs

Tests employee record handling, run preview and run generation, and that the
single, preview and generate paths agree.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from python.payroll.calculator import ApitScenario, EmployeeSalaryInput, compute_payroll
from python.payroll.payroll_run import (
    EmployeeRecord,
    EmployeeStatus,
    PayrollRunSummary,
    calculate_single,
    format_sequence,
    generate_payroll_run,
    preview_payroll_run,
)
from python.payroll.tax_rates import TaxRateSet

AS_OF = date(2025, 6, 1)


class FakeCounter:
    """In-memory stand-in for the counters table."""

    def __init__(self):
        self.values = {}

    def __call__(self, name: str, prefix: str) -> str:
        self.values[name] = self.values.get(name, 0) + 1
        return format_sequence(prefix, self.values[name])


@pytest.fixture
def employees(sample_employee_rows: list[dict]) -> list[EmployeeRecord]:
    return [EmployeeRecord.from_dict(row) for row in sample_employee_rows]


class TestEmployeeRecord:
    """Tests for EmployeeRecord."""

    def test_from_dict(self, sample_employee_row: dict):
        employee = EmployeeRecord.from_dict(sample_employee_row)

        assert employee.employee_id == "EMP001"
        assert employee.basic_salary == Decimal("150000.00")
        assert employee.status == EmployeeStatus.CONFIRMED
        assert employee.apit_scenario == ApitScenario.EMPLOYEE
        assert employee.epf_employee_rate is None

    def test_from_dict_defaults(self):
        employee = EmployeeRecord.from_dict({
            "employee_id": "EMP010",
            "full_name": "New Hire",
            "basic_salary": 80000,
            "probation_end_date": "2025-09-30",
        })

        assert employee.status == EmployeeStatus.UNDER_PROBATION
        assert employee.transport_allowance == 0
        assert employee.probation_end_date == date(2025, 9, 30)
        assert employee.apit_scenario == ApitScenario.EMPLOYEE

    def test_rate_overrides(self, sample_employee_row: dict):
        sample_employee_row["epf_employee_rate"] = 10
        employee = EmployeeRecord.from_dict(sample_employee_row)

        assert employee.epf_employee_rate == Decimal("10")
        assert employee.to_salary_input(AS_OF).epf_employee_rate == Decimal("10")

    def test_performance_salary_confirmed(self, sample_employee_row: dict):
        employee = EmployeeRecord.from_dict(sample_employee_row)
        assert employee.current_performance_salary(AS_OF) == Decimal("15000.00")

    def test_performance_salary_on_probation(self, sample_employee_row: dict):
        sample_employee_row.update(status="under_probation", probation_end_date=date(2025, 6, 30))
        employee = EmployeeRecord.from_dict(sample_employee_row)

        assert employee.current_performance_salary(AS_OF) == Decimal("5000.00")
        assert employee.current_performance_salary(date(2025, 6, 30)) == Decimal("5000.00")
        # Probation end date passed, status not yet updated
        assert employee.current_performance_salary(date(2025, 7, 1)) == Decimal("15000.00")

    def test_performance_salary_closed(self, sample_employee_row: dict):
        sample_employee_row["status"] = "closed"
        employee = EmployeeRecord.from_dict(sample_employee_row)

        assert employee.current_performance_salary(AS_OF) == 0

    def test_to_salary_input(self, sample_employee_row: dict):
        salary = EmployeeRecord.from_dict(sample_employee_row).to_salary_input(AS_OF, 2500)

        assert isinstance(salary, EmployeeSalaryInput)
        assert salary.basic_salary == Decimal("150000.00")
        # 15,000 performance + 10,000 transport + 2,500 one-off
        assert salary.allowances == Decimal("27500.00")


class TestCalculateSingle:
    """Tests for single employee calculation."""

    def test_confirmed_employee(self, employees, default_rates: TaxRateSet):
        result = calculate_single(employees[0], default_rates, as_of=AS_OF)

        assert result.gross_salary == Decimal("175000.00")
        assert result.epf_employee == Decimal("12000.00")
        assert result.epf_employer == Decimal("18000.00")
        assert result.etf == Decimal("4500.00")
        assert result.apit == Decimal("6499.98")
        assert result.total_deductions == Decimal("18524.98")
        assert result.net_salary == Decimal("156475.02")
        assert result.total_ctc == Decimal("197500.00")

    def test_scenario_override(self, employees, default_rates: TaxRateSet):
        result = calculate_single(employees[0], default_rates, apit_scenario="employer", as_of=AS_OF)

        assert result.apit_scenario == ApitScenario.EMPLOYER
        assert result.apit_employer == Decimal("6499.98")
        assert result.total_deductions == Decimal("12025.00")

    def test_extra_allowances(self, employees, default_rates: TaxRateSet):
        result = calculate_single(employees[0], default_rates, extra_allowances=5000, as_of=AS_OF)

        assert result.allowances == Decimal("30000.00")
        assert result.gross_salary == Decimal("180000.00")
        assert result.epf_employee == Decimal("12000.00")

    def test_does_not_modify_employee(self, employees, default_rates: TaxRateSet):
        calculate_single(employees[1], default_rates, apit_scenario="employee", as_of=AS_OF)
        assert employees[1].apit_scenario == ApitScenario.EMPLOYER


class TestPreviewPayrollRun:
    """Tests for payroll run preview."""

    def test_excludes_closed_employees(self, employees, default_rates: TaxRateSet):
        summary = preview_payroll_run(employees, default_rates, 6, 2025, as_of=AS_OF)

        assert isinstance(summary, PayrollRunSummary)
        assert summary.total_employees == 2
        assert [e.employee.employee_id for e in summary.entries] == ["EMP001", "EMP002"]
        assert all(e.serial_number is None for e in summary.entries)
        assert summary.run_number is None

    def test_employer_scenario_entry(self, employees, default_rates: TaxRateSet):
        summary = preview_payroll_run(employees, default_rates, 6, 2025, as_of=AS_OF)
        result = summary.entries[1].result

        assert result.gross_salary == Decimal("220000")
        assert result.apit == Decimal("14100.00")
        assert result.apit_employer == Decimal("14100.00")
        assert result.total_deductions == Decimal("16025.00")
        assert result.net_salary == Decimal("203975.00")
        assert result.total_ctc == Decimal("264100.00")

    def test_totals(self, employees, default_rates: TaxRateSet):
        summary = preview_payroll_run(employees, default_rates, 6, 2025, as_of=AS_OF)
        totals = summary.totals()

        assert summary.total_gross_salary == Decimal("395000.00")
        assert summary.total_net_salary == Decimal("360450.02")
        assert summary.total_deductions == Decimal("34549.98")
        assert summary.total_ctc == Decimal("461600.00")
        assert totals["totalApit"] == Decimal("20599.98")
        assert totals["totalApitEmployer"] == Decimal("14100.00")
        assert totals["totalEpfEmployee"] == Decimal("28000.00")
        assert totals["totalEtf"] == Decimal("10500.00")

    def test_empty_run(self, default_rates: TaxRateSet):
        summary = preview_payroll_run([], default_rates, 1, 2025)

        assert summary.total_employees == 0
        assert summary.total_gross_salary == 0

    def test_to_dict(self, employees, default_rates: TaxRateSet):
        data = preview_payroll_run(employees, default_rates, 6, 2025, as_of=AS_OF).to_dict()

        assert data["month"] == 6
        assert data["totalEmployees"] == 2
        assert data["totalGrossSalary"] == 395000.0
        assert data["entries"][0]["employeeId"] == "EMP001"
        assert data["entries"][0]["netSalary"] == 156475.02
        assert data["entries"][1]["apitScenario"] == "employer"


class TestGeneratePayrollRun:
    """Tests for payroll run generation."""

    def test_assigns_numbers_and_persists(self, employees, default_rates: TaxRateSet):
        persist = Mock()

        summary = generate_payroll_run(
            employees, default_rates, 6, 2025, persist, FakeCounter(), as_of=AS_OF
        )

        assert summary.run_number == "RUN_001"
        assert [e.serial_number for e in summary.entries] == ["PAY_001", "PAY_002"]
        assert persist.call_count == 2
        stored = [c.args[0] for c in persist.call_args_list]
        assert [e.serial_number for e in stored] == ["PAY_001", "PAY_002"]

    def test_matches_preview_and_single(self, employees, default_rates: TaxRateSet):
        """Single calculation, preview and generate produce identical figures."""
        preview = preview_payroll_run(employees, default_rates, 6, 2025, as_of=AS_OF)
        generated = generate_payroll_run(
            employees, default_rates, 6, 2025, Mock(), FakeCounter(), as_of=AS_OF
        )

        assert len(preview.entries) == len(generated.entries)
        for previewed, stored in zip(preview.entries, generated.entries):
            single = calculate_single(previewed.employee, default_rates, as_of=AS_OF)
            direct = compute_payroll(previewed.employee.to_salary_input(AS_OF), default_rates)

            assert previewed.result == stored.result == single == direct
            assert previewed.result.to_dict() == stored.result.to_dict()

        assert preview.totals() == generated.totals()

    def test_persist_error_propagates(self, employees, default_rates: TaxRateSet):
        persist = Mock(side_effect=RuntimeError("insert failed"))

        with pytest.raises(RuntimeError, match="insert failed"):
            generate_payroll_run(
                employees, default_rates, 6, 2025, persist, FakeCounter(), as_of=AS_OF
            )


def test_format_sequence():
    assert format_sequence("PAY", 7) == "PAY_007"
    assert format_sequence("RUN", 1234) == "RUN_1234"
