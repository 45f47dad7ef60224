"""
FastAPI Backend for Payroll

Provides REST API endpoints for payroll calculation and tax configuration.
"""

from .main import app

__all__ = ["app"]
