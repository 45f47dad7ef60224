"""
FastAPI Main Application

Entry point for the payroll API.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import (
    payroll_router,
    tax_config_router,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Payroll API...")
    yield
    logger.info("Shutting down Payroll API...")


app = FastAPI(
    title="Payroll API",
    description="API for payroll calculation, payroll runs and tax configuration",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(payroll_router, prefix="/api")
app.include_router(tax_config_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Payroll API",
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "endpoints": {
            "calculate": "/api/payroll/calculate",
            "preview_run": "/api/payroll/runs/preview",
            "generate_run": "/api/payroll/runs/generate",
            "runs": "/api/payroll/runs",
            "tax_config": "/api/tax-config",
            "active_rates": "/api/tax-config/active",
        },
        "authentication": "X-User-ID header required in production",
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    uvicorn.run(
        "python.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )
