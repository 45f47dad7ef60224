"""
Payroll Calculator Module

Computes EPF/ETF contributions, APIT withholding, net salary and cost to
company for a single employee. Pure functions with no I/O; the same
compute_payroll() backs single calculations, run previews and run generation.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Iterable

from .tax_rates import TaxBracket, TaxRateSet

CENT = Decimal("0.01")


class ApitScenario(Enum):
    """Who bears the APIT cost."""
    EMPLOYEE = "employee"  # Scenario A: deducted from the payslip
    EMPLOYER = "employer"  # Scenario B: absorbed as cost to company

    @classmethod
    def parse(cls, value: Any) -> "ApitScenario":
        """Parse a scenario flag.

        Accepts the enum, 'employee'/'employer' or 'A'/'B'. None means employee.

        Raises:
            ValueError: For unknown values
        """
        if value is None:
            return cls.EMPLOYEE
        if isinstance(value, cls):
            return value

        text = str(value).strip().lower()
        aliases = {"a": cls.EMPLOYEE, "b": cls.EMPLOYER}
        if text in aliases:
            return aliases[text]
        return cls(text)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class EmployeeSalaryInput:
    """Salary inputs for one employee.

    Rate overrides, when set, replace the resolved rate for this employee only.
    """

    basic_salary: Decimal
    allowances: Decimal = Decimal("0")
    apit_scenario: ApitScenario = ApitScenario.EMPLOYEE
    epf_employee_rate: Decimal | None = None
    epf_employer_rate: Decimal | None = None
    etf_rate: Decimal | None = None

    def __post_init__(self):
        self.basic_salary = to_decimal(self.basic_salary)
        self.allowances = to_decimal(self.allowances)
        self.apit_scenario = ApitScenario.parse(self.apit_scenario)
        for name in ("epf_employee_rate", "epf_employer_rate", "etf_rate"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, to_decimal(value))


@dataclass(frozen=True)
class PayrollComputationResult:
    """Salary breakdown for one employee."""

    basic_salary: Decimal
    allowances: Decimal
    apit_scenario: ApitScenario
    gross_salary: Decimal
    epf_employee: Decimal
    epf_employer: Decimal
    etf: Decimal
    apit: Decimal
    apit_employer: Decimal
    stamp_fee: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    total_ctc: Decimal
    # Effective rates used
    epf_employee_rate: Decimal
    epf_employer_rate: Decimal
    etf_rate: Decimal

    def to_dict(self) -> dict:
        return {
            "basicSalary": float(self.basic_salary),
            "allowances": float(self.allowances),
            "apitScenario": self.apit_scenario.value,
            "grossSalary": float(self.gross_salary),
            "epfEmployee": float(self.epf_employee),
            "epfEmployer": float(self.epf_employer),
            "etf": float(self.etf),
            "apit": float(self.apit),
            "apitEmployer": float(self.apit_employer),
            "stampFee": float(self.stamp_fee),
            "totalDeductions": float(self.total_deductions),
            "netSalary": float(self.net_salary),
            "totalCTC": float(self.total_ctc),
            "epfEmployeeRate": float(self.epf_employee_rate),
            "epfEmployerRate": float(self.epf_employer_rate),
            "etfRate": float(self.etf_rate),
        }


def calculate_apit(gross_salary: Any, brackets: Iterable[TaxBracket]) -> Decimal:
    """Calculate APIT on gross salary by walking the bracket table.

    Each bracket taxes min(gross, max_income) - min_income + 1. The +1 offset
    is part of the published payroll figures and must not be removed.
    Rounded once, after all brackets are summed.

    Args:
        gross_salary: Monthly gross salary
        brackets: Brackets ascending by min_income

    Returns:
        APIT amount to 2 decimal places
    """
    gross_salary = to_decimal(gross_salary)
    if gross_salary.is_nan():
        return gross_salary

    total_tax = Decimal("0")

    for bracket in brackets:
        if gross_salary <= bracket.min_income:
            break

        upper = gross_salary
        if bracket.max_income is not None:
            upper = min(gross_salary, bracket.max_income)

        taxable = upper - bracket.min_income + 1
        total_tax += taxable * bracket.rate / 100

    return round2(total_tax)


def compute_payroll(
    salary: EmployeeSalaryInput,
    rates: TaxRateSet
) -> PayrollComputationResult:
    """Compute the full salary breakdown for one employee.

    EPF and ETF are charged on basic salary, APIT on gross salary. Inputs are
    not validated; negative or NaN amounts flow through the arithmetic.

    Args:
        salary: Employee salary inputs
        rates: Resolved tax rates

    Returns:
        PayrollComputationResult
    """
    epf_employee_rate = (
        salary.epf_employee_rate if salary.epf_employee_rate is not None
        else rates.epf_employee_rate
    )
    epf_employer_rate = (
        salary.epf_employer_rate if salary.epf_employer_rate is not None
        else rates.epf_employer_rate
    )
    etf_rate = salary.etf_rate if salary.etf_rate is not None else rates.etf_rate
    stamp_fee = rates.stamp_fee

    basic_salary = salary.basic_salary
    gross_salary = basic_salary + salary.allowances

    epf_employee = round2(basic_salary * epf_employee_rate / 100)
    epf_employer = round2(basic_salary * epf_employer_rate / 100)
    etf = round2(basic_salary * etf_rate / 100)

    apit = calculate_apit(gross_salary, rates.apit_brackets)

    if salary.apit_scenario == ApitScenario.EMPLOYER:
        total_deductions = epf_employee + stamp_fee
        apit_employer = apit
    else:
        total_deductions = epf_employee + apit + stamp_fee
        apit_employer = Decimal("0.00")

    net_salary = gross_salary - total_deductions
    total_ctc = gross_salary + epf_employer + etf + apit_employer

    return PayrollComputationResult(
        basic_salary=basic_salary,
        allowances=salary.allowances,
        apit_scenario=salary.apit_scenario,
        gross_salary=gross_salary,
        epf_employee=epf_employee,
        epf_employer=epf_employer,
        etf=etf,
        apit=apit,
        apit_employer=apit_employer,
        stamp_fee=stamp_fee,
        total_deductions=total_deductions,
        net_salary=net_salary,
        total_ctc=total_ctc,
        epf_employee_rate=epf_employee_rate,
        epf_employer_rate=epf_employer_rate,
        etf_rate=etf_rate,
    )
