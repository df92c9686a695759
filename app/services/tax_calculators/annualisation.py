"""
Veyro Payroll - Annualisation of Irregular Payments

Irregular payments (bonus, commission, back pay, ...) are taxed as the
difference between the annual tax on projected income with and without the
payment:

    A = tax(regular annual income + YTD irregular before + payment)
    B = tax(regular annual income + YTD irregular before)
    PAYE on payment = max(0, A - B)

The YTD figure is a parameter, so the calculation is a pure function.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.services.tax_calculators.paye_service import AnnualTaxResult, PAYECalculator
from app.utils.money import ZERO


@dataclass(frozen=True)
class AnnualisationResult:
    payment: Decimal
    ytd_irregular_before: Decimal
    income_without_payment: Decimal
    income_with_payment: Decimal
    tax_without_payment: AnnualTaxResult
    tax_with_payment: AnnualTaxResult
    incremental_tax: Decimal

    @property
    def ytd_irregular_after(self) -> Decimal:
        return self.ytd_irregular_before + self.payment

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payment": str(self.payment),
            "ytd_irregular_before": str(self.ytd_irregular_before),
            "income_without_payment": str(self.income_without_payment),
            "income_with_payment": str(self.income_with_payment),
            "tax_without_payment": str(self.tax_without_payment.tax_after_rebates),
            "tax_with_payment": str(self.tax_with_payment.tax_after_rebates),
            "incremental_tax": str(self.incremental_tax),
        }


def annualise_irregular_payment(
    calculator: PAYECalculator,
    regular_annual_income: Decimal,
    ytd_irregular_before: Decimal,
    payment: Decimal,
    age: Optional[int] = None,
) -> AnnualisationResult:
    """
    Incremental annual tax attributable to one irregular payment.

    Args:
        calculator: Bracket resolver for the payment's tax year
        regular_annual_income: Regular monthly taxable income x 12
        ytd_irregular_before: Irregular payments already taxed this tax year
        payment: The new irregular payment
        age: Employee age, None if unknown
    """
    if payment < ZERO:
        raise ValueError("Irregular payment cannot be negative")

    without = regular_annual_income + ytd_irregular_before
    with_payment = without + payment
    tax_b = calculator.calculate_annual_tax(without, age)
    tax_a = calculator.calculate_annual_tax(with_payment, age)
    incremental = max(ZERO, tax_a.tax_after_rebates - tax_b.tax_after_rebates)

    return AnnualisationResult(
        payment=payment,
        ytd_irregular_before=ytd_irregular_before,
        income_without_payment=without,
        income_with_payment=with_payment,
        tax_without_payment=tax_b,
        tax_with_payment=tax_a,
        incremental_tax=incremental,
    )


def annualise_payments(
    calculator: PAYECalculator,
    regular_annual_income: Decimal,
    ytd_irregular_before: Decimal,
    payments: Iterable[Decimal],
    age: Optional[int] = None,
) -> Tuple[List[AnnualisationResult], Decimal]:
    """
    Annualise several payments in order, each against the running total
    of the ones before it.

    Returns the per-payment results and the YTD irregular total afterwards.
    """
    results = []
    running = ytd_irregular_before
    for payment in payments:
        result = annualise_irregular_payment(calculator, regular_annual_income, running, payment, age)
        results.append(result)
        running = result.ytd_irregular_after
    return results, running
