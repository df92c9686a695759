"""
Veyro Payroll - PAYE Calculator Service

Annual income tax from a tax year's bracket table, less age rebates.

Each band carries (lower, upper, base tax, marginal rate). Income in a band
pays the band's base tax plus the marginal rate on the excess over the
lower bound. Rebates:
- Primary: every taxpayer
- Secondary: from the secondary rebate age (65)
- Tertiary: from the tertiary rebate age (75), on top of the secondary

The annual liability after rebates is never negative.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from app.services.tax_calculators.tax_tables import RebateTier, TaxBand, TaxYearTables
from app.utils.money import MONTHS_IN_YEAR, ZERO


@dataclass(frozen=True)
class AnnualTaxResult:
    """Outcome of the bracket resolver for one annual income."""
    annual_income: Decimal
    band: Optional[TaxBand]
    tax_before_rebates: Decimal
    rebates: Tuple[RebateTier, ...]
    total_rebates: Decimal
    tax_after_rebates: Decimal

    @property
    def monthly_tax(self) -> Decimal:
        return self.tax_after_rebates / MONTHS_IN_YEAR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "annual_income": str(self.annual_income),
            "band": self.band.to_dict() if self.band else None,
            "tax_before_rebates": str(self.tax_before_rebates),
            "rebates": [{"tier": r.name, "amount": str(r.amount)} for r in self.rebates],
            "total_rebates": str(self.total_rebates),
            "tax_after_rebates": str(self.tax_after_rebates),
        }


class PAYECalculator:
    """
    PAYE bracket resolver for one tax year.

    Pure: the tables are supplied by the caller.
    """

    def __init__(self, tables: TaxYearTables):
        self.tables = tables

    @property
    def tax_year(self) -> str:
        return self.tables.tax_year

    def find_band(self, annual_income: Decimal) -> Optional[TaxBand]:
        """Lowest band containing the income, None for zero or negative income."""
        if annual_income <= ZERO:
            return None
        for band in self.tables.bands:
            if band.contains(annual_income):
                return band
        return None

    def calculate_tax_before_rebates(self, annual_income: Decimal) -> Decimal:
        band = self.find_band(annual_income)
        if band is None:
            return ZERO
        return band.calculate_tax(annual_income)

    def applicable_rebates(self, age: Optional[int]) -> Tuple[RebateTier, ...]:
        """
        Rebates for an age. Unknown age gets only the rebates without an
        age condition (the primary rebate).
        """
        if age is None:
            return tuple(r for r in self.tables.rebates if r.min_age <= 0)
        return tuple(r for r in self.tables.rebates if age >= r.min_age)

    def calculate_annual_tax(self, annual_income: Decimal, age: Optional[int] = None) -> AnnualTaxResult:
        """
        Annual tax before and after rebates.

        Args:
            annual_income: Annual (or annualised) taxable income
            age: Age in completed years, None if unknown

        Returns:
            AnnualTaxResult with the band used and the rebates applied
        """
        band = self.find_band(annual_income)
        before = band.calculate_tax(annual_income) if band else ZERO
        rebates = self.applicable_rebates(age)
        total_rebates = sum((r.amount for r in rebates), ZERO)
        after = max(ZERO, before - total_rebates)
        return AnnualTaxResult(
            annual_income=annual_income,
            band=band,
            tax_before_rebates=before,
            rebates=rebates,
            total_rebates=total_rebates,
            tax_after_rebates=after,
        )

    def calculate_monthly_paye(self, monthly_taxable_income: Decimal, age: Optional[int] = None) -> Tuple[Decimal, AnnualTaxResult]:
        """
        Monthly PAYE on a regular monthly income, by annualising it.

        Returns (monthly PAYE before medical credits, annual result).
        """
        result = self.calculate_annual_tax(monthly_taxable_income * MONTHS_IN_YEAR, age)
        return result.monthly_tax, result

    def get_tax_bands_info(self) -> List[Dict[str, Any]]:
        """Bands for display."""
        return [
            {
                "lower": str(band.lower),
                "upper": str(band.upper) if band.upper is not None else "and above",
                "base_tax": str(band.base_tax),
                "rate": f"{(band.rate * 100).normalize()}%",
            }
            for band in self.tables.bands
        ]
