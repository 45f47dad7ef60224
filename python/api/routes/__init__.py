"""
API Routes Package

Contains all route modules for the payroll API.
"""

from .payroll import router as payroll_router
from .tax_config import router as tax_config_router

__all__ = [
    "payroll_router",
    "tax_config_router",
]
