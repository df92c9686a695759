"""
Veyro Payroll - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin
from app.models.practice import Practice
from app.models.payroll import (
    PayrollStatus,
    AdditionCategory,
    FringeBenefitCategory,
    PayrollAuditAction,
    Employee,
    FringeBenefit,
    GarnisheeDeduction,
    PayrollRun,
    PayrollEntry,
    PayrollAddition,
    PayrollAuditLog,
    EmployeeYTD,
)
from app.models.tax_tables import (
    RebateTier,
    TaxBracket,
    TaxRebate,
    MedicalTaxCredit,
    StatutoryRate,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "Practice",
    "PayrollStatus",
    "AdditionCategory",
    "FringeBenefitCategory",
    "PayrollAuditAction",
    "Employee",
    "FringeBenefit",
    "GarnisheeDeduction",
    "PayrollRun",
    "PayrollEntry",
    "PayrollAddition",
    "PayrollAuditLog",
    "EmployeeYTD",
    "RebateTier",
    "TaxBracket",
    "TaxRebate",
    "MedicalTaxCredit",
    "StatutoryRate",
]
