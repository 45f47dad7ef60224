"""
Tax Rate Source

Connects the tax rate provider to the tax_configs table.
"""

import os

from ..payroll.tax_rates import TaxRateProvider
from .database import execute_query


def load_tax_config_rows() -> list[dict]:
    """Load every tax configuration row."""
    query = """
        SELECT
            id,
            name,
            tax_type,
            rate,
            brackets,
            applicable_from,
            applicable_to,
            is_active
        FROM tax_configs
        ORDER BY applicable_from, id
    """
    return execute_query(query)


rate_provider = TaxRateProvider(
    load_tax_config_rows,
    cache_ttl_seconds=float(os.getenv("TAX_RATE_CACHE_TTL", "60")),
)
