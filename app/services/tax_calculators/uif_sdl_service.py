"""
Veyro Payroll - UIF / SDL Calculator

UIF (Unemployment Insurance Fund):
- Employee and employer each contribute a rate of remuneration
- Remuneration above the monthly ceiling does not attract more UIF

SDL (Skills Development Levy):
- Employer only, a rate of total remuneration
- Practices whose annual payroll is below the threshold are exempt
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from app.services.tax_calculators.tax_tables import StatutoryRates
from app.utils.money import MONTHS_IN_YEAR, ZERO


@dataclass(frozen=True)
class UIFResult:
    uif_base: Decimal
    employee: Decimal
    employer: Decimal


def calculate_uif(rates: StatutoryRates, remuneration: Decimal, exempt: bool = False) -> UIFResult:
    """UIF on min(remuneration, ceiling)."""
    if exempt or remuneration <= ZERO:
        return UIFResult(ZERO, ZERO, ZERO)
    base = min(remuneration, rates.uif_monthly_ceiling)
    return UIFResult(
        uif_base=base,
        employee=base * rates.uif_employee_rate,
        employer=base * rates.uif_employer_rate,
    )


def calculate_sdl(rates: StatutoryRates, remuneration: Decimal, practice_exempt: bool = False) -> Decimal:
    if practice_exempt or remuneration <= ZERO:
        return ZERO
    return remuneration * rates.sdl_rate


def projected_annual_payroll(monthly_salaries: Iterable[Decimal]) -> Decimal:
    """Regular monthly salaries of the practice, annualised."""
    return sum(monthly_salaries, ZERO) * MONTHS_IN_YEAR


def is_sdl_exempt(rates: StatutoryRates, annual_payroll: Decimal, override: bool = False) -> bool:
    """Exempt when forced, or when annual payroll is below the threshold."""
    return override or annual_payroll < rates.sdl_annual_threshold
