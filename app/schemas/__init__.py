"""
Veyro Payroll - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.payroll import (
    # Runs
    PayrollRunResponse,
    StatusTransitionRequest,
    RunValidationResponse,
    # Entries
    PayrollEntryResponse,
    PayrollAdditionCreate,
    PayrollAdditionResponse,
    # Fringe benefits
    FringeBenefitCreate,
    FringeBenefitEnd,
    FringeBenefitResponse,
    # Garnishee orders
    GarnisheeCreate,
    GarnisheeResponse,
    # Audit
    PayrollAuditLogResponse,
)

__all__ = [
    "PayrollRunResponse",
    "StatusTransitionRequest",
    "RunValidationResponse",
    "PayrollEntryResponse",
    "PayrollAdditionCreate",
    "PayrollAdditionResponse",
    "FringeBenefitCreate",
    "FringeBenefitEnd",
    "FringeBenefitResponse",
    "GarnisheeCreate",
    "GarnisheeResponse",
    "PayrollAuditLogResponse",
]
