"""
Veyro Payroll - Tax Table Models

Tax-year-scoped statutory configuration. A new tax year is added as data,
seeded from app/data/tax_tables.json.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Enum as SQLEnum, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class RebateTier(str, Enum):
    """Age-based rebate tiers."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


class TaxBracket(BaseModel):
    """
    One band of the annual income tax table.

    Tax for income in the band = base_tax + (income - lower_bound) * rate.
    """

    __tablename__ = "tax_brackets"

    tax_year: Mapped[str] = mapped_column(String(9), nullable=False, index=True)
    lower_bound: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
        comment="Income above which the marginal rate applies",
    )
    upper_bound: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=15, scale=2), nullable=True,
        comment="NULL for the top band",
    )
    base_tax: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)

    __table_args__ = (
        UniqueConstraint("tax_year", "lower_bound", name="uq_tax_bracket_year_lower"),
    )


class TaxRebate(BaseModel):
    """Annual rebate for an age tier."""

    __tablename__ = "tax_rebates"

    tax_year: Mapped[str] = mapped_column(String(9), nullable=False, index=True)
    tier: Mapped[RebateTier] = mapped_column(SQLEnum(RebateTier), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    min_age: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("tax_year", "tier", name="uq_tax_rebate_year_tier"),
    )


class MedicalTaxCredit(BaseModel):
    """Monthly medical scheme fees tax credit amounts."""

    __tablename__ = "medical_tax_credits"

    tax_year: Mapped[str] = mapped_column(String(9), nullable=False, unique=True)
    main_member: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    first_dependent: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)
    additional_dependent: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), nullable=False)


class StatutoryRate(BaseModel):
    """UIF, SDL and retirement deductibility parameters for a tax year."""

    __tablename__ = "statutory_rates"

    tax_year: Mapped[str] = mapped_column(String(9), nullable=False, unique=True)
    uif_employee_rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)
    uif_employer_rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)
    uif_monthly_ceiling: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
        comment="Monthly remuneration above which UIF stops increasing",
    )
    sdl_rate: Mapped[Decimal] = mapped_column(Numeric(precision=7, scale=4), nullable=False)
    sdl_annual_threshold: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
        comment="Practices with a smaller annual payroll are SDL exempt",
    )
    retirement_cap_rate: Mapped[Decimal] = mapped_column(
        Numeric(precision=7, scale=4), nullable=False,
        comment="Deductible share of taxable income for retirement contributions",
    )
