"""
Payroll Module

Handles Sri Lankan payroll computations: EPF/ETF contributions, APIT
withholding, net salary and cost to company, and payroll run generation.
"""

from .tax_rates import (
    TaxType,
    TaxBracket,
    TaxRateSet,
    TaxConfigEntry,
    TaxRateProvider,
    DEFAULT_APIT_BRACKETS,
    resolve_tax_rates,
    validate_brackets,
    load_tax_config_file,
    default_tax_config_entries,
)
from .calculator import (
    ApitScenario,
    EmployeeSalaryInput,
    PayrollComputationResult,
    calculate_apit,
    compute_payroll,
    round2,
)
from .payroll_run import (
    EmployeeRecord,
    EmployeeStatus,
    PayrollRunEntry,
    PayrollRunSummary,
    calculate_single,
    preview_payroll_run,
    generate_payroll_run,
    format_sequence,
)

__all__ = [
    # Tax Rates
    "TaxType",
    "TaxBracket",
    "TaxRateSet",
    "TaxConfigEntry",
    "TaxRateProvider",
    "DEFAULT_APIT_BRACKETS",
    "resolve_tax_rates",
    "validate_brackets",
    "load_tax_config_file",
    "default_tax_config_entries",
    # Calculator
    "ApitScenario",
    "EmployeeSalaryInput",
    "PayrollComputationResult",
    "calculate_apit",
    "compute_payroll",
    "round2",
    # Payroll Runs
    "EmployeeRecord",
    "EmployeeStatus",
    "PayrollRunEntry",
    "PayrollRunSummary",
    "calculate_single",
    "preview_payroll_run",
    "generate_payroll_run",
    "format_sequence",
]
