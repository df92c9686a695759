"""
Veyro Payroll - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.database import init_db, close_db, async_session_maker
from app.routers import payroll
from app.services.tax_table_service import TaxTableService
from app.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def seed_tax_tables():
    """
    Load the bundled tax tables for any tax year not yet in the database.
    """
    async with async_session_maker() as session:
        service = TaxTableService(session)
        tax_years = await service.seed_from_file(settings.tax_tables_path)
        logger.info(f"Tax tables available for {', '.join(tax_years)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - create tables directly)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

        if settings.seed_tax_tables_on_startup:
            try:
                await seed_tax_tables()
            except Exception as e:
                logger.warning(f"Tax table seeding skipped: {e}")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Statutory payroll engine: PAYE, UIF, SDL, year-to-date ledger and SARS exports",
    version="0.1.0",
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

setup_exception_handlers(app)

app.include_router(
    payroll.router,
    prefix=f"/api/{settings.api_version}/payroll",
    tags=["Payroll"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.app_env,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
    )
