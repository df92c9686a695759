"""
Veyro Payroll - Payroll Models

Statutory payroll with South African compliance:
- PAYE (Pay As You Earn) - income tax withheld from remuneration
- UIF (Unemployment Insurance Fund) - employee and employer contributions
- SDL (Skills Development Levy) - employer levy on remuneration

A payroll run holds one entry per employee. Entries are replaced wholesale
while the run is a draft and frozen once it is processed. Paying a run
accumulates its entries into the employee year-to-date ledger.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    Enum as SQLEnum, JSON, UniqueConstraint, Uuid, event, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.practice import Practice


# ===========================================
# ENUMS
# ===========================================

class PayrollStatus(str, Enum):
    """Payroll run lifecycle status."""
    DRAFT = "draft"
    PROCESSED = "processed"
    PAID = "paid"


class AdditionCategory(str, Enum):
    """Irregular payment categories taxed with the annualisation method."""
    BONUS = "bonus"
    COMMISSION = "commission"
    OVERTIME = "overtime"
    BACK_PAY = "back_pay"
    SEVERANCE = "severance"
    THIRTEENTH_CHEQUE = "thirteenth_cheque"
    ALLOWANCE = "allowance"


class FringeBenefitCategory(str, Enum):
    """Taxable benefits in kind."""
    COMPANY_CAR = "company_car"
    HOUSING = "housing"
    LOW_INTEREST_LOAN = "low_interest_loan"
    MEDICAL = "medical"
    OTHER = "other"


class PayrollAuditAction(str, Enum):
    """Kinds of payroll audit records."""
    ENTRY_CALCULATED = "entry_calculated"
    STATUS_CHANGED = "status_changed"


# ===========================================
# EMPLOYEE (COMPENSATION PROFILE)
# ===========================================

class Employee(BaseModel):
    """
    Employee compensation profile.

    Maintained by HR outside the payroll engine; the engine only reads it.
    """

    __tablename__ = "employees"

    practice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("practices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identity
    employee_number: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True,
        comment="Drives the age rebate tier",
    )
    tax_number: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Income tax reference number",
    )

    # Remuneration
    monthly_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    retirement_contribution: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Fixed monthly employee retirement fund contribution",
    )
    retirement_percentage: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=5, scale=2),
        nullable=True,
        comment="Percentage of base salary; overrides the fixed amount when set",
    )
    medical_aid_contribution: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Employee portion of medical scheme contribution",
    )
    other_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Fixed monthly employee deductions such as loans or union fees",
    )
    has_medical_aid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    medical_aid_dependents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    uif_exempt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paye_override: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=True,
        comment="Manual monthly PAYE, replaces the calculated amount",
    )

    # Bank details
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    bank_branch_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    practice: Mapped["Practice"] = relationship("Practice", back_populates="employees")
    fringe_benefits: Mapped[List["FringeBenefit"]] = relationship(
        "FringeBenefit",
        back_populates="employee",
        cascade="all, delete-orphan",
    )
    garnishees: Mapped[List["GarnisheeDeduction"]] = relationship(
        "GarnisheeDeduction",
        back_populates="employee",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("practice_id", "employee_number", name="uq_employee_practice_number"),
    )

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, number={self.employee_number})>"


class FringeBenefit(BaseModel):
    """Taxable benefit in kind, active between its effective dates."""

    __tablename__ = "fringe_benefits"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[FringeBenefitCategory] = mapped_column(
        SQLEnum(FringeBenefitCategory), nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    monthly_taxable_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    employee: Mapped["Employee"] = relationship("Employee", back_populates="fringe_benefits")

    def is_active_on(self, on_date: date) -> bool:
        if self.effective_from > on_date:
            return False
        return self.effective_to is None or self.effective_to >= on_date


class GarnisheeDeduction(BaseModel):
    """Court-ordered fixed monthly deduction from net pay."""

    __tablename__ = "garnishee_deductions"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reference: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="Court order / case reference",
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    employee: Mapped["Employee"] = relationship("Employee", back_populates="garnishees")


# ===========================================
# PAYROLL RUN
# ===========================================

class PayrollRun(BaseModel):
    """
    Payroll run for one practice and one calendar month.

    Totals are always the sum of the run's entries and are only written
    by a recalculation.
    """

    __tablename__ = "payroll_runs"

    practice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("practices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_year: Mapped[str] = mapped_column(
        String(9), nullable=False,
        comment="e.g. 2024/2025",
    )

    status: Mapped[PayrollStatus] = mapped_column(
        SQLEnum(PayrollStatus),
        default=PayrollStatus.DRAFT,
        nullable=False,
    )
    sdl_exempt: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="SDL exemption as decided at the last recalculation",
    )

    # Summary (calculated)
    total_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_taxable_income: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_paye: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_uif_employee: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_uif_employer: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_sdl: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_retirement: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_medical_aid: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_garnishee: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_other_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_net: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
        comment="Employer UIF + SDL",
    )

    calculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    declaration_submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="Monthly employer declaration submitted to the revenue authority",
    )

    # Relationships
    practice: Mapped["Practice"] = relationship("Practice", back_populates="payroll_runs")
    entries: Mapped[List["PayrollEntry"]] = relationship(
        "PayrollEntry",
        back_populates="payroll_run",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("practice_id", "month", "year", name="uq_payroll_run_practice_period"),
    )

    @property
    def is_locked(self) -> bool:
        return self.status != PayrollStatus.DRAFT

    def __repr__(self) -> str:
        return f"<PayrollRun(id={self.id}, period={self.year}-{self.month:02d}, status={self.status})>"


# ===========================================
# PAYROLL ENTRY
# ===========================================

class PayrollEntry(BaseModel):
    """One employee's result for one payroll run."""

    __tablename__ = "payroll_entries"

    payroll_run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tax_year: Mapped[str] = mapped_column(String(9), nullable=False)

    # Earnings
    base_salary: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    additions_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    gross: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
        comment="Cash gross: base salary + additions",
    )
    fringe_benefits_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    taxable_income: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
        comment="Gross + fringe benefits",
    )

    # PAYE
    paye_regular: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    paye_irregular: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    medical_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
        comment="Medical tax credit applied against PAYE",
    )
    paye: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    # Statutory contributions
    uif_employee: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    uif_employer: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    sdl: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    # Other deductions
    retirement: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    medical_aid: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    garnishee_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    other_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)

    warnings: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Relationships
    payroll_run: Mapped["PayrollRun"] = relationship("PayrollRun", back_populates="entries")
    employee: Mapped["Employee"] = relationship("Employee")
    additions: Mapped[List["PayrollAddition"]] = relationship(
        "PayrollAddition",
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="PayrollAddition.sequence",
    )

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="uq_payroll_entry_run_employee"),
    )

    @property
    def employer_contributions(self) -> Decimal:
        return self.uif_employer + self.sdl


class PayrollAddition(BaseModel):
    """Irregular payment recorded against one payroll entry."""

    __tablename__ = "payroll_additions"

    payroll_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("payroll_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[AdditionCategory] = mapped_column(SQLEnum(AdditionCategory), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sequence: Mapped[int] = mapped_column(
        Integer, nullable=False,
        comment="Recording order; additions are annualised in this order",
    )

    entry: Mapped["PayrollEntry"] = relationship("PayrollEntry", back_populates="additions")


# ===========================================
# AUDIT LOG (APPEND-ONLY)
# ===========================================

class PayrollAuditLog(Base):
    """
    Immutable record of one payroll calculation or status change.

    Entry ids are stored without a foreign key so that history outlives
    entries replaced by a recalculation. This table should have no UPDATE
    or DELETE permissions.
    """

    __tablename__ = "payroll_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    payroll_run_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    payroll_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    action: Mapped[PayrollAuditAction] = mapped_column(SQLEnum(PayrollAuditAction), nullable=False)
    tax_year: Mapped[str] = mapped_column(String(9), nullable=False)
    breakdown: Mapped[dict] = mapped_column(JSON, nullable=False)
    breakdown_hash: Mapped[str] = mapped_column(
        String(64), nullable=False,
        comment="SHA-256 of the canonical breakdown JSON",
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamp (immutable)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )


# ===========================================
# YEAR-TO-DATE LEDGER
# ===========================================

class EmployeeYTD(BaseModel):
    """Cumulative paid figures per employee per tax year. Only ever incremented."""

    __tablename__ = "employee_ytd"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tax_year: Mapped[str] = mapped_column(String(9), nullable=False)

    ytd_gross: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_taxable_income: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_irregular_payments: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
        comment="Irregular payments already taxed this year, input to annualisation",
    )
    ytd_paye: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_uif_employee: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_uif_employer: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_sdl: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_retirement: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_medical_aid: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_medical_credits: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    ytd_fringe_benefits: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=Decimal("0.00"), nullable=False,
    )
    applied_run_ids: Mapped[list] = mapped_column(
        JSON, default=list, nullable=False,
        comment="Payroll runs already accumulated into this row",
    )

    employee: Mapped["Employee"] = relationship("Employee")

    __table_args__ = (
        UniqueConstraint("employee_id", "tax_year", name="uq_employee_ytd_employee_tax_year"),
    )


@event.listens_for(PayrollAuditLog, "before_update")
@event.listens_for(PayrollAuditLog, "before_delete")
def _reject_audit_log_mutation(mapper, connection, target):
    raise ValueError(f"Payroll audit record {target.id} is append-only")
