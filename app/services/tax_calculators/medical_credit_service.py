"""
Veyro Payroll - Medical Tax Credit Calculator

Monthly medical scheme fees tax credit. The credit is subtracted from
PAYE, not from taxable income, and never takes PAYE below zero.
"""

from dataclasses import dataclass
from decimal import Decimal

from app.services.tax_calculators.tax_tables import MedicalCreditRates
from app.utils.money import ZERO


@dataclass(frozen=True)
class MedicalCreditResult:
    main_member: Decimal
    dependents: Decimal
    total: Decimal


def calculate_medical_credit(rates: MedicalCreditRates, dependents: int, has_medical_aid: bool = True) -> MedicalCreditResult:
    """
    Credit for the main member plus dependents.

    The first dependent earns the first-dependent amount, every further
    dependent the additional-dependent amount.
    """
    if dependents < 0:
        raise ValueError("Dependent count cannot be negative")
    if not has_medical_aid:
        return MedicalCreditResult(ZERO, ZERO, ZERO)

    dependent_credit = ZERO
    if dependents >= 1:
        dependent_credit = rates.first_dependent + rates.additional_dependent * (dependents - 1)
    total = rates.main_member + dependent_credit
    return MedicalCreditResult(main_member=rates.main_member, dependents=dependent_credit, total=total)


def apply_medical_credit(paye: Decimal, credit: Decimal) -> Decimal:
    """Portion of the credit that can be used against this PAYE."""
    return min(max(paye, ZERO), credit)
