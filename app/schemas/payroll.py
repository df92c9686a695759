"""
Veyro Payroll - Payroll Schemas

Pydantic schemas for payroll requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.payroll import AdditionCategory, FringeBenefitCategory, PayrollAuditAction, PayrollStatus


# ===========================================
# ENUMS AS LITERALS
# ===========================================

PayrollStatusEnum = Literal["draft", "processed", "paid"]

AdditionCategoryEnum = Literal[
    "bonus", "commission", "overtime", "back_pay", "severance", "thirteenth_cheque", "allowance"
]

FringeBenefitCategoryEnum = Literal[
    "company_car", "housing", "low_interest_loan", "medical", "other"
]


# ===========================================
# RUN SCHEMAS
# ===========================================

class PayrollRunResponse(BaseModel):
    """Payroll run with its aggregate totals."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    practice_id: UUID
    month: int
    year: int
    tax_year: str
    status: PayrollStatus
    sdl_exempt: bool
    total_employees: int
    total_gross: Decimal
    total_taxable_income: Decimal
    total_paye: Decimal
    total_uif_employee: Decimal
    total_uif_employer: Decimal
    total_sdl: Decimal
    total_retirement: Decimal
    total_medical_aid: Decimal
    total_garnishee: Decimal
    total_other_deductions: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_employer_contributions: Decimal
    calculated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    declaration_submitted_at: Optional[datetime] = None


class StatusTransitionRequest(BaseModel):
    """Move a payroll run to its next status."""
    target_status: PayrollStatusEnum


class RunValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str] = []
    warnings: List[str] = []


# ===========================================
# ENTRY SCHEMAS
# ===========================================

class PayrollAdditionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    category: AdditionCategory
    amount: Decimal
    description: Optional[str] = None
    sequence: int


class PayrollEntryResponse(BaseModel):
    """One employee's calculated result in a run."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    tax_year: str
    base_salary: Decimal
    additions_total: Decimal
    gross: Decimal
    fringe_benefits_total: Decimal
    taxable_income: Decimal
    paye_regular: Decimal
    paye_irregular: Decimal
    medical_credit: Decimal
    paye: Decimal
    uif_employee: Decimal
    uif_employer: Decimal
    sdl: Decimal
    retirement: Decimal
    medical_aid: Decimal
    garnishee_total: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    warnings: Optional[List[str]] = None
    additions: List[PayrollAdditionResponse] = []


class PayrollAdditionCreate(BaseModel):
    """Record an irregular payment on a draft entry."""
    category: AdditionCategoryEnum
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(None, max_length=255)


# ===========================================
# FRINGE BENEFIT SCHEMAS
# ===========================================

class FringeBenefitCreate(BaseModel):
    category: FringeBenefitCategoryEnum
    monthly_taxable_value: Decimal = Field(..., gt=0, decimal_places=2)
    effective_from: date
    effective_to: Optional[date] = None
    description: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to must not be before effective_from")
        return self


class FringeBenefitEnd(BaseModel):
    effective_to: date


class FringeBenefitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    category: FringeBenefitCategory
    description: Optional[str] = None
    monthly_taxable_value: Decimal
    effective_from: date
    effective_to: Optional[date] = None


# ===========================================
# GARNISHEE SCHEMAS
# ===========================================

class GarnisheeCreate(BaseModel):
    reference: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)

    @field_validator("reference")
    @classmethod
    def strip_reference(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reference must not be blank")
        return v


class GarnisheeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    reference: str
    amount: Decimal
    is_active: bool


# ===========================================
# AUDIT SCHEMAS
# ===========================================

class PayrollAuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    payroll_run_id: UUID
    payroll_entry_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    action: PayrollAuditAction
    tax_year: str
    breakdown: Dict[str, Any]
    breakdown_hash: str
    description: Optional[str] = None
    calculated_at: datetime


# ===========================================
# YEAR-TO-DATE SCHEMAS
# ===========================================

class YTDTotalsResponse(BaseModel):
    """Paid year-to-date totals for one tax year."""
    model_config = ConfigDict(from_attributes=True)

    tax_year: str
    ytd_gross: Decimal
    ytd_taxable_income: Decimal
    ytd_irregular_payments: Decimal
    ytd_paye: Decimal
    ytd_uif_employee: Decimal
    ytd_uif_employer: Decimal
    ytd_sdl: Decimal
    ytd_retirement: Decimal
    ytd_medical_aid: Decimal
    ytd_medical_credits: Decimal
    ytd_fringe_benefits: Decimal


class EmployeeYTDResponse(YTDTotalsResponse):
    employee_id: UUID
    applied_run_ids: List[str] = []


# ===========================================
# PAYSLIP SCHEMAS
# ===========================================

class PayslipLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    amount: Decimal
    description: Optional[str] = None


class PayslipSummary(BaseModel):
    """Payslip summary for lists."""
    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    payroll_run_id: UUID
    month: int
    year: int
    tax_year: str
    status: PayrollStatus
    gross: Decimal
    total_deductions: Decimal
    net_pay: Decimal


class PayslipResponse(PayslipSummary):
    """Full payslip response."""

    # Employee info
    employee_id: UUID
    employee_name: str
    employee_number: str
    tax_number: Optional[str] = None
    practice_name: str

    # Earnings
    earnings: List[PayslipLineResponse]
    fringe_benefits_total: Decimal
    taxable_income: Decimal

    # Deductions
    deductions: List[PayslipLineResponse]
    medical_credit: Decimal

    # Employer
    employer_contributions: List[PayslipLineResponse]
    total_employer_contributions: Decimal

    ytd: Optional[YTDTotalsResponse] = None
