"""
Payroll API Routes

Provides endpoints for payroll calculation and for previewing, generating
and managing payroll runs.
"""

import logging
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ...payroll.payroll_run import (
    EmployeeRecord,
    PayrollRunEntry,
    calculate_single,
    generate_payroll_run,
    preview_payroll_run,
)
from ..auth import User, require_permission
from ..database import execute_query, transaction
from ..rates import rate_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payroll", tags=["payroll"])


class CalculateRequest(BaseModel):
    """Request for a single payroll calculation."""

    employee_id: str = Field(..., min_length=1)
    allowances: float = Field(0, ge=0)
    apit_scenario: Literal["employee", "employer"] | None = None


class PayrollRunRequest(BaseModel):
    """Request to preview or generate a payroll run."""

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    employee_ids: list[str] = []  # empty: all employees that are not closed


# Statuses a single payroll entry can take
ENTRY_STATUSES = ("draft", "approved", "paid")


class RunStatusUpdate(BaseModel):
    """Request to change the status of a stored payroll run."""

    status: Literal[
        "draft", "pending_approval", "approved", "rejected", "processing", "completed", "paid",
    ]


EMPLOYEE_COLUMNS = """
    id,
    employee_id,
    full_name,
    basic_salary,
    transport_allowance,
    performance_salary_probation,
    performance_salary_confirmed,
    probation_end_date,
    status,
    apit_scenario,
    epf_employee_rate,
    epf_employer_rate,
    etf_rate
"""


def load_employee(employee_id: str) -> EmployeeRecord | None:
    query = f"SELECT {EMPLOYEE_COLUMNS} FROM employees WHERE employee_id = :employee_id"
    rows = execute_query(query, {"employee_id": employee_id})
    return EmployeeRecord.from_dict(rows[0]) if rows else None


def load_employees(employee_ids: list[str]) -> list[EmployeeRecord]:
    if employee_ids:
        query = f"""
            SELECT {EMPLOYEE_COLUMNS}
            FROM employees
            WHERE employee_id = ANY(:employee_ids)
            ORDER BY employee_id
        """
        rows = execute_query(query, {"employee_ids": employee_ids})
    else:
        query = f"""
            SELECT {EMPLOYEE_COLUMNS}
            FROM employees
            WHERE status <> 'closed'
            ORDER BY employee_id
        """
        rows = execute_query(query)

    return [EmployeeRecord.from_dict(row) for row in rows]


@router.post("/calculate")
async def calculate_payroll(
    request: CalculateRequest,
    user: User = Depends(require_permission("payroll")),
) -> dict:
    """Calculate payroll for one employee without storing it.

    Args:
        request: Employee ID, one-off allowances and optional APIT scenario
        user: Authenticated user with payroll permission

    Returns:
        Payroll computation breakdown
    """
    employee = load_employee(request.employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")

    rates = rate_provider.get_active_rates()
    result = calculate_single(
        employee,
        rates,
        extra_allowances=Decimal(str(request.allowances)),
        apit_scenario=request.apit_scenario,
    )

    return {"employeeId": employee.employee_id, **result.to_dict()}


@router.post("/runs/preview")
async def preview_run(
    request: PayrollRunRequest,
    user: User = Depends(require_permission("payroll")),
) -> dict:
    """Preview a payroll run before generating it."""
    employees = load_employees(request.employee_ids)
    rates = rate_provider.get_active_rates()

    summary = preview_payroll_run(employees, rates, request.month, request.year)
    return summary.to_dict()


@router.post("/runs/generate")
async def generate_run(
    request: PayrollRunRequest,
    user: User = Depends(require_permission("payroll")),
) -> dict:
    """Generate and store a payroll run.

    The run number, payroll serial numbers, entries and run row are written
    in one transaction, so a failure leaves nothing behind.

    Args:
        request: Month, year and employees to include
        user: Authenticated user with payroll permission

    Returns:
        Stored run with its entries
    """
    employees = load_employees(request.employee_ids)
    if not employees:
        raise HTTPException(status_code=400, detail="No employees to include in payroll run")

    rates = rate_provider.get_active_rates()
    run_number = None

    with transaction() as tx:
        def persist_entry(entry: PayrollRunEntry) -> None:
            result = entry.result
            tx.insert("payrolls", {
                "serial_number": entry.serial_number,
                "run_number": run_number,
                "employee_id": entry.employee.employee_id,
                "month": entry.month,
                "year": entry.year,
                "basic_salary": result.basic_salary,
                "allowances": result.allowances,
                "gross_salary": result.gross_salary,
                "epf_employee": result.epf_employee,
                "epf_employer": result.epf_employer,
                "etf": result.etf,
                "apit": result.apit,
                "apit_employer": result.apit_employer,
                "stamp_fee": result.stamp_fee,
                "total_deductions": result.total_deductions,
                "net_salary": result.net_salary,
                "total_ctc": result.total_ctc,
                "status": entry.status,
                "created_by": user.user_id,
            })

        def sequence(name: str, prefix: str) -> str:
            nonlocal run_number
            value = tx.next_sequence(name, prefix)
            if name == "payrollrun":
                run_number = value
            return value

        summary = generate_payroll_run(
            employees, rates, request.month, request.year, persist_entry, sequence
        )

        tx.insert("payroll_runs", {
            "run_number": summary.run_number,
            "month": summary.month,
            "year": summary.year,
            "status": summary.status,
            "total_employees": summary.total_employees,
            "total_gross_salary": summary.total_gross_salary,
            "total_net_salary": summary.total_net_salary,
            "total_deductions": summary.total_deductions,
            "total_ctc": summary.total_ctc,
            "total_epf_employee": summary.total_epf_employee,
            "total_epf_employer": summary.total_epf_employer,
            "total_etf": summary.total_etf,
            "total_apit": summary.total_apit,
            "total_apit_employer": summary.total_apit_employer,
            "created_by": user.user_id,
        })

    logger.info(f"User {user.user_id} generated payroll run {summary.run_number}")

    return summary.to_dict()


@router.get("/runs")
async def list_runs(
    user: User = Depends(require_permission("view")),
) -> list[dict]:
    """List stored payroll runs, newest first."""
    query = """
        SELECT
            id,
            run_number,
            month,
            year,
            status,
            total_employees,
            total_gross_salary,
            total_net_salary,
            total_deductions,
            total_ctc,
            total_epf_employee,
            total_epf_employer,
            total_etf,
            total_apit,
            total_apit_employer,
            created_by,
            created_at
        FROM payroll_runs
        ORDER BY year DESC, month DESC, id DESC
    """
    return execute_query(query)


@router.get("/runs/{run_number}")
async def get_run(
    run_number: str,
    user: User = Depends(require_permission("view")),
) -> dict:
    """Get a stored payroll run with its entries."""
    runs = execute_query(
        "SELECT * FROM payroll_runs WHERE run_number = :run_number",
        {"run_number": run_number},
    )
    if not runs:
        raise HTTPException(status_code=404, detail="Payroll run not found")

    entries = execute_query(
        "SELECT * FROM payrolls WHERE run_number = :run_number ORDER BY serial_number",
        {"run_number": run_number},
    )

    return {**runs[0], "entries": entries}


@router.put("/runs/{run_number}")
async def update_run_status(
    run_number: str,
    request: RunStatusUpdate,
    user: User = Depends(require_permission("payroll")),
) -> dict:
    """Move a stored payroll run to a new status.

    Entries follow the run when it becomes approved or paid.

    Args:
        run_number: Run number such as RUN_001
        request: New status
        user: Authenticated user with payroll permission

    Returns:
        Run number and its new status
    """
    with transaction() as tx:
        updated = tx.execute(
            """
            UPDATE payroll_runs
            SET status = :status,
                updated_at = NOW()
            WHERE run_number = :run_number
            RETURNING id
            """,
            {"run_number": run_number, "status": request.status},
        )
        if not updated:
            raise HTTPException(status_code=404, detail="Payroll run not found")

        if request.status in ENTRY_STATUSES:
            tx.execute(
                "UPDATE payrolls SET status = :status WHERE run_number = :run_number",
                {"run_number": run_number, "status": request.status},
            )

    logger.info(f"User {user.user_id} set payroll run {run_number} to {request.status}")

    return {"message": "Payroll run updated", "run_number": run_number, "status": request.status}


@router.delete("/runs/{run_number}")
async def delete_run(
    run_number: str,
    user: User = Depends(require_permission("payroll")),
) -> dict:
    """Delete a stored payroll run together with its entries."""
    with transaction() as tx:
        deleted_entries = tx.execute(
            "DELETE FROM payrolls WHERE run_number = :run_number RETURNING id",
            {"run_number": run_number},
        )
        deleted = tx.execute(
            "DELETE FROM payroll_runs WHERE run_number = :run_number RETURNING id",
            {"run_number": run_number},
        )
        if not deleted:
            raise HTTPException(status_code=404, detail="Payroll run not found")

    logger.info(
        f"User {user.user_id} deleted payroll run {run_number} "
        f"with {len(deleted_entries)} entries"
    )

    return {"message": "Payroll run deleted", "run_number": run_number}
