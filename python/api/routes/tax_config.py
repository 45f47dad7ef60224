"""
Tax Configuration API Routes

Provides endpoints for managing statutory rate configuration.
"""

import json
import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ...payroll.tax_rates import (
    TaxBracket,
    TaxConfigEntry,
    TaxType,
    default_tax_config_entries,
    parse_entries,
    validate_brackets,
)
from ..auth import User, require_permission
from ..database import execute_insert, execute_query
from ..rates import rate_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tax-config", tags=["tax-config"])


class BracketInput(BaseModel):
    """APIT bracket input."""

    min_income: float
    max_income: float | None = None
    rate: float


class TaxConfigInput(BaseModel):
    """Input model for creating a tax configuration."""

    name: str
    tax_type: Literal[
        "apit", "epf_employee", "epf_employer", "etf", "stamp_fee",
        "vat", "income", "withholding",
    ]
    rate: float | None = None
    brackets: list[BracketInput] = []
    applicable_from: date
    applicable_to: date | None = None
    is_active: bool = True


class TaxConfigUpdate(BaseModel):
    """Input model for changing an existing tax configuration."""

    name: str | None = None
    tax_type: Literal[
        "apit", "epf_employee", "epf_employer", "etf", "stamp_fee",
        "vat", "income", "withholding",
    ] | None = None
    rate: float | None = None
    brackets: list[BracketInput] | None = None
    applicable_from: date | None = None
    applicable_to: date | None = None
    is_active: bool | None = None


# Fields an update may clear by sending null
NULLABLE_FIELDS = {"rate", "applicable_to"}


TAX_CONFIG_COLUMNS = """
    id,
    name,
    tax_type,
    rate,
    brackets,
    applicable_from,
    applicable_to,
    is_active
"""


@router.get("")
async def list_tax_configs(
    user: User = Depends(require_permission("view")),
) -> list[dict]:
    """List tax configurations, most recent first."""
    query = f"""
        SELECT {TAX_CONFIG_COLUMNS}
        FROM tax_configs
        ORDER BY applicable_from DESC, id DESC
    """
    return [entry.to_dict() for entry in parse_entries(execute_query(query))]


@router.get("/active")
async def get_active_rates(
    as_of: date | None = Query(None),
    user: User = Depends(require_permission("view")),
) -> dict:
    """Get the rate set in force on a date (default: today)."""
    as_of = as_of or date.today()
    rates = rate_provider.get_active_rates(as_of)
    return {"asOf": as_of.isoformat(), **rates.to_dict()}


def _validated_row(config: TaxConfigInput) -> dict:
    """Check a configuration and turn it into a tax_configs row.

    Raises:
        HTTPException: 400 if the window or the rates are unusable
    """
    if config.applicable_to and config.applicable_to < config.applicable_from:
        raise HTTPException(status_code=400, detail="applicable_to is before applicable_from")

    try:
        brackets = [TaxBracket.from_dict(b.model_dump()) for b in config.brackets]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if config.tax_type == TaxType.APIT.value:
        errors = validate_brackets(brackets)
        if errors:
            raise HTTPException(status_code=400, detail="; ".join(errors))
    elif config.rate is None:
        raise HTTPException(status_code=400, detail=f"A rate is required for {config.tax_type}")

    return {
        "name": config.name,
        "tax_type": config.tax_type,
        "rate": config.rate,
        "brackets": json.dumps([b.model_dump() for b in config.brackets]),
        "applicable_from": config.applicable_from,
        "applicable_to": config.applicable_to,
        "is_active": config.is_active,
    }


def load_tax_config(config_id: int) -> TaxConfigEntry | None:
    rows = execute_query(
        f"SELECT {TAX_CONFIG_COLUMNS} FROM tax_configs WHERE id = :id",
        {"id": config_id},
    )
    entries = parse_entries(rows)
    return entries[0] if entries else None


@router.post("")
async def create_tax_config(
    request: TaxConfigInput,
    user: User = Depends(require_permission("tax_admin")),
) -> dict:
    """Create a tax configuration.

    Args:
        request: Tax configuration
        user: Authenticated user with tax_admin permission

    Returns:
        Created configuration ID
    """
    result = execute_insert("tax_configs", _validated_row(request))
    rate_provider.invalidate()

    logger.info(f"User {user.user_id} created tax configuration {request.name!r}")

    return {"message": "Tax configuration created", "id": result["id"] if result else None}


@router.post("/seed")
async def seed_tax_configs(
    user: User = Depends(require_permission("tax_admin")),
) -> dict:
    """Seed the default statutory rates into an empty configuration store."""
    existing = execute_query("SELECT COUNT(*) AS count FROM tax_configs")
    if existing and existing[0]["count"] > 0:
        raise HTTPException(
            status_code=400,
            detail="Tax configurations already exist. Delete them first to reseed.",
        )

    entries = default_tax_config_entries()
    for entry in entries:
        execute_insert("tax_configs", {
            "name": entry.name,
            "tax_type": entry.tax_type.value,
            "rate": entry.rate,
            "brackets": json.dumps([]),
            "applicable_from": entry.applicable_from,
            "applicable_to": None,
            "is_active": True,
        })
    rate_provider.invalidate()

    logger.info(f"User {user.user_id} seeded {len(entries)} tax configurations")

    return {"message": "Tax configurations seeded successfully", "count": len(entries)}


@router.get("/{config_id}")
async def get_tax_config(
    config_id: int,
    user: User = Depends(require_permission("view")),
) -> dict:
    """Get a single tax configuration."""
    entry = load_tax_config(config_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Tax configuration not found")

    return entry.to_dict()


@router.put("/{config_id}")
async def update_tax_config(
    config_id: int,
    request: TaxConfigUpdate,
    user: User = Depends(require_permission("tax_admin")),
) -> dict:
    """Update a tax configuration.

    Only the fields present in the body change; the merged configuration is
    validated the same way as a new one. Used to close a window
    (applicable_to) or deactivate an entry (is_active).

    Args:
        config_id: Configuration ID
        request: Fields to change
        user: Authenticated user with tax_admin permission

    Returns:
        Updated configuration
    """
    entry = load_tax_config(config_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Tax configuration not found")

    current = {
        "name": entry.name,
        "tax_type": entry.tax_type.value,
        "rate": float(entry.rate) if entry.rate is not None else None,
        "brackets": [
            {
                "min_income": float(b.min_income),
                "max_income": float(b.max_income) if b.max_income is not None else None,
                "rate": float(b.rate),
            }
            for b in entry.brackets
        ],
        "applicable_from": entry.applicable_from,
        "applicable_to": entry.applicable_to,
        "is_active": entry.is_active,
    }
    changes = {
        key: value for key, value in request.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    merged = TaxConfigInput.model_validate({**current, **changes})
    row = _validated_row(merged)

    query = """
        UPDATE tax_configs
        SET name = :name,
            tax_type = :tax_type,
            rate = :rate,
            brackets = :brackets,
            applicable_from = :applicable_from,
            applicable_to = :applicable_to,
            is_active = :is_active,
            updated_at = NOW()
        WHERE id = :id
        RETURNING id
    """
    result = execute_query(query, {**row, "id": config_id})
    if not result:
        raise HTTPException(status_code=404, detail="Tax configuration not found")
    rate_provider.invalidate()

    logger.info(f"User {user.user_id} updated tax configuration {config_id}")

    return {"message": "Tax configuration updated", "id": config_id, **merged.model_dump(mode="json")}


@router.delete("/{config_id}")
async def delete_tax_config(
    config_id: int,
    user: User = Depends(require_permission("tax_admin")),
) -> dict:
    """Delete a tax configuration."""
    result = execute_query(
        "DELETE FROM tax_configs WHERE id = :id RETURNING id",
        {"id": config_id},
    )
    if not result:
        raise HTTPException(status_code=404, detail="Tax configuration not found")
    rate_provider.invalidate()

    logger.info(f"User {user.user_id} deleted tax configuration {config_id}")

    return {"message": "Tax configuration deleted", "id": config_id}
