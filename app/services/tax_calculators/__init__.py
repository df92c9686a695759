"""
Veyro Payroll - Tax Calculators Package

Pure statutory calculators. Every calculator takes the tax year's tables
as input.

Modules:
- tax_tables: tax year tables, registry and tax year arithmetic
- paye_service: bracket resolver with age rebates
- medical_credit_service: medical scheme fees tax credit
- uif_sdl_service: UIF (capped) and SDL (threshold exemption)
- annualisation: PAYE on irregular payments
"""

from decimal import Decimal
from typing import Optional

from app.services.tax_calculators.tax_tables import (
    TaxBand,
    RebateTier,
    MedicalCreditRates,
    StatutoryRates,
    TaxYearTables,
    TaxTableRegistry,
    tax_year_for,
    tax_year_for_period,
    tax_year_bounds,
    parse_tax_year,
    period_reference_date,
    age_on,
)
from app.services.tax_calculators.paye_service import PAYECalculator, AnnualTaxResult
from app.services.tax_calculators.medical_credit_service import (
    MedicalCreditResult,
    calculate_medical_credit,
    apply_medical_credit,
)
from app.services.tax_calculators.uif_sdl_service import (
    UIFResult,
    calculate_uif,
    calculate_sdl,
    projected_annual_payroll,
    is_sdl_exempt,
)
from app.services.tax_calculators.annualisation import (
    AnnualisationResult,
    annualise_irregular_payment,
    annualise_payments,
)


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_paye(tables: TaxYearTables, annual_income: Decimal, age: Optional[int] = None) -> Decimal:
    """
    Annual PAYE after rebates.

    Args:
        tables: Tax year tables
        annual_income: Annual taxable income
        age: Employee age (None if unknown, primary rebate only)

    Returns:
        Annual tax liability, never negative
    """
    return PAYECalculator(tables).calculate_annual_tax(annual_income, age).tax_after_rebates


def get_paye_band(tables: TaxYearTables, annual_income: Decimal) -> Optional[TaxBand]:
    """Band an annual income falls in."""
    return PAYECalculator(tables).find_band(annual_income)


__all__ = [
    # Tables
    "TaxBand",
    "RebateTier",
    "MedicalCreditRates",
    "StatutoryRates",
    "TaxYearTables",
    "TaxTableRegistry",
    "tax_year_for",
    "tax_year_for_period",
    "tax_year_bounds",
    "parse_tax_year",
    "period_reference_date",
    "age_on",
    # PAYE
    "PAYECalculator",
    "AnnualTaxResult",
    "calculate_paye",
    "get_paye_band",
    # Medical credits
    "MedicalCreditResult",
    "calculate_medical_credit",
    "apply_medical_credit",
    # UIF / SDL
    "UIFResult",
    "calculate_uif",
    "calculate_sdl",
    "projected_annual_payroll",
    "is_sdl_exempt",
    # Annualisation
    "AnnualisationResult",
    "annualise_irregular_payment",
    "annualise_payments",
]
