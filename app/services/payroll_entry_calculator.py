"""
Veyro Payroll - Payroll Entry Calculator

Computes one employee's full result for one pay period:

    gross            = base salary + irregular additions (cash)
    taxable income   = gross + fringe benefits (notional)
    PAYE             = regular PAYE (monthly share of annual tax on the
                       regular salary + fringe benefits)
                     + annualised PAYE on each addition, in recording order
                     - medical tax credit (capped at the PAYE)
    UIF / SDL        = on gross
    net pay          = gross - PAYE - UIF - retirement - medical aid
                       - garnishee - other deductions

No database access: inputs are plain values and the tax year's tables.
Values keep full precision until the result is rounded for persistence.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.services.payroll_deductions import (
    NON_STATUTORY_DEDUCTIONS,
    apply_deduction_policy,
    total_fringe_benefits,
    total_garnishee,
    active_fringe_benefits,
    active_garnishees,
)
from app.services.tax_calculators import (
    PAYECalculator,
    TaxYearTables,
    age_on,
    annualise_payments,
    apply_medical_credit,
    calculate_medical_credit,
    calculate_sdl,
    calculate_uif,
    period_reference_date,
    tax_year_for_period,
)
from app.utils.error_handling import ConfigurationException
from app.utils.money import MONTHS_IN_YEAR, ZERO, quantize_money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CompensationProfile:
    """The parts of an employee record the calculation reads."""
    employee_id: Any
    monthly_salary: Decimal
    date_of_birth: Optional[date] = None
    retirement_contribution: Decimal = ZERO
    retirement_percentage: Optional[Decimal] = None
    medical_aid_contribution: Decimal = ZERO
    other_deductions: Decimal = ZERO
    has_medical_aid: bool = False
    medical_aid_dependents: int = 0
    uif_exempt: bool = False
    paye_override: Optional[Decimal] = None

    @classmethod
    def from_employee(cls, employee: Any) -> "CompensationProfile":
        return cls(
            employee_id=employee.id,
            monthly_salary=employee.monthly_salary,
            date_of_birth=employee.date_of_birth,
            retirement_contribution=employee.retirement_contribution or ZERO,
            retirement_percentage=employee.retirement_percentage,
            medical_aid_contribution=employee.medical_aid_contribution or ZERO,
            other_deductions=employee.other_deductions or ZERO,
            has_medical_aid=bool(employee.has_medical_aid),
            medical_aid_dependents=employee.medical_aid_dependents or 0,
            uif_exempt=bool(employee.uif_exempt),
            paye_override=employee.paye_override,
        )

    @property
    def retirement(self) -> Decimal:
        if self.retirement_percentage is not None:
            return self.monthly_salary * self.retirement_percentage / HUNDRED
        return self.retirement_contribution


@dataclass(frozen=True)
class AdditionInput:
    category: str
    amount: Decimal
    sequence: int
    description: Optional[str] = None


@dataclass
class EntryResult:
    """Rounded values ready to persist, plus the full breakdown."""
    employee_id: Any
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
    warnings: List[str] = field(default_factory=list)
    breakdown: Dict[str, Any] = field(default_factory=dict)

    @property
    def employer_contributions(self) -> Decimal:
        return self.uif_employer + self.sdl

    def entry_values(self) -> Dict[str, Any]:
        """Column values for a PayrollEntry."""
        return {
            "employee_id": self.employee_id,
            "tax_year": self.tax_year,
            "base_salary": self.base_salary,
            "additions_total": self.additions_total,
            "gross": self.gross,
            "fringe_benefits_total": self.fringe_benefits_total,
            "taxable_income": self.taxable_income,
            "paye_regular": self.paye_regular,
            "paye_irregular": self.paye_irregular,
            "medical_credit": self.medical_credit,
            "paye": self.paye,
            "uif_employee": self.uif_employee,
            "uif_employer": self.uif_employer,
            "sdl": self.sdl,
            "retirement": self.retirement,
            "medical_aid": self.medical_aid,
            "garnishee_total": self.garnishee_total,
            "other_deductions": self.other_deductions,
            "total_deductions": self.total_deductions,
            "net_pay": self.net_pay,
            "warnings": list(self.warnings),
        }


class PayrollEntryCalculator:
    """
    Calculates payroll entries for one tax year.

    Args:
        tables: Tax year tables for the pay period
        deduction_order: Order of non-statutory deductions
        garnishee_warning_ratio: Share of disposable income above which
            garnishee orders are flagged
    """

    def __init__(
        self,
        tables: TaxYearTables,
        deduction_order: Sequence[str] = NON_STATUTORY_DEDUCTIONS,
        garnishee_warning_ratio: Optional[Decimal] = None,
    ):
        self.tables = tables
        self.paye_calculator = PAYECalculator(tables)
        self.deduction_order = list(deduction_order)
        self.garnishee_warning_ratio = garnishee_warning_ratio

    def calculate(
        self,
        profile: CompensationProfile,
        month: int,
        year: int,
        additions: Sequence[AdditionInput] = (),
        fringe_benefits: Iterable[Any] = (),
        garnishees: Iterable[Any] = (),
        ytd_irregular_before: Decimal = ZERO,
        sdl_exempt: bool = False,
    ) -> EntryResult:
        tax_year = tax_year_for_period(month, year)
        if tax_year != self.tables.tax_year:
            raise ConfigurationException(
                f"Tables for {self.tables.tax_year} cannot be used for a {tax_year} pay period",
                details={"tax_year": tax_year, "tables_tax_year": self.tables.tax_year},
            )

        reference_date = period_reference_date(month, year)
        age = age_on(profile.date_of_birth, date(year, month, 1))
        warnings: List[str] = []
        if age is None:
            warnings.append("Date of birth missing: only the primary rebate applied")

        # Earnings
        fringe_benefits = list(fringe_benefits)
        garnishees = list(garnishees)
        ordered_additions = sorted(additions, key=lambda a: a.sequence)
        base = profile.monthly_salary
        additions_total = sum((a.amount for a in ordered_additions), ZERO)
        gross = base + additions_total
        fringe_total = total_fringe_benefits(fringe_benefits, reference_date)
        taxable_income = gross + fringe_total

        # PAYE on the regular component
        regular_monthly_taxable = base + fringe_total
        paye_regular, regular_result = self.paye_calculator.calculate_monthly_paye(regular_monthly_taxable, age)

        # PAYE on irregular payments
        annualised, ytd_irregular_after = annualise_payments(
            self.paye_calculator,
            regular_monthly_taxable * MONTHS_IN_YEAR,
            ytd_irregular_before,
            [a.amount for a in ordered_additions],
            age,
        )
        paye_irregular = sum((r.incremental_tax for r in annualised), ZERO)

        # Medical tax credit
        credit = calculate_medical_credit(
            self.tables.medical_credits,
            profile.medical_aid_dependents,
            profile.has_medical_aid,
        )
        paye_before_credit = paye_regular + paye_irregular
        credit_applied = apply_medical_credit(paye_before_credit, credit.total)
        paye = paye_before_credit - credit_applied

        if profile.paye_override is not None:
            logger.info(f"Manual PAYE override for employee {profile.employee_id}: {profile.paye_override}")
            paye_regular, paye_irregular, credit_applied = profile.paye_override, ZERO, ZERO
            paye = profile.paye_override

        # UIF / SDL on cash remuneration
        uif = calculate_uif(self.tables.statutory, gross, profile.uif_exempt)
        sdl = calculate_sdl(self.tables.statutory, gross, sdl_exempt)

        retirement = profile.retirement
        medical_aid = profile.medical_aid_contribution
        garnishee = total_garnishee(garnishees)
        other = profile.other_deductions

        cap = taxable_income * self.tables.statutory.retirement_cap_rate
        if retirement > cap:
            warnings.append(
                f"Retirement contribution {quantize_money(retirement)} exceeds "
                f"{self.tables.statutory.retirement_cap_rate * 100:.1f}% of taxable income "
                f"({quantize_money(cap)}); excess is not tax-deductible"
            )

        # Round once for persistence; net pay is derived from the rounded parts
        rounded = {
            "paye": quantize_money(paye),
            "uif": quantize_money(uif.employee),
            "retirement": quantize_money(retirement),
            "medical_aid": quantize_money(medical_aid),
            "garnishee": quantize_money(garnishee),
            "other": quantize_money(other),
        }
        gross_rounded = quantize_money(gross)
        # PAYE parts reconcile to the rounded total; irregular takes the residual
        paye_regular_rounded = quantize_money(paye_regular)
        credit_rounded = quantize_money(credit_applied)
        paye_irregular_rounded = rounded["paye"] - paye_regular_rounded + credit_rounded
        outcome = apply_deduction_policy(
            gross_rounded,
            rounded,
            self.deduction_order,
            self.garnishee_warning_ratio,
        )
        warnings.extend(outcome.warnings)

        breakdown = {
            "tax_year": tax_year,
            "period": {"month": month, "year": year, "reference_date": reference_date.isoformat()},
            "age": age,
            "base_salary": str(base),
            "additions": [
                {
                    "category": a.category,
                    "amount": str(a.amount),
                    "sequence": a.sequence,
                    "annualisation": r.to_dict(),
                }
                for a, r in zip(ordered_additions, annualised)
            ],
            "additions_total": str(additions_total),
            "gross": str(gross),
            "fringe_benefits": [
                {"monthly_taxable_value": str(b.monthly_taxable_value)}
                for b in active_fringe_benefits(fringe_benefits, reference_date)
            ],
            "fringe_benefits_total": str(fringe_total),
            "taxable_income": str(taxable_income),
            "regular": {
                "monthly_taxable": str(regular_monthly_taxable),
                "annual": regular_result.to_dict(),
                "monthly_paye": str(paye_regular),
            },
            "irregular": {
                "ytd_before": str(ytd_irregular_before),
                "ytd_after": str(ytd_irregular_after),
                "paye": str(paye_irregular),
            },
            "medical_credit": {
                "has_medical_aid": profile.has_medical_aid,
                "dependents": profile.medical_aid_dependents,
                "available": str(credit.total),
                "applied": str(credit_applied),
            },
            "paye_override": str(profile.paye_override) if profile.paye_override is not None else None,
            "paye": str(paye),
            "uif": {
                "base": str(uif.uif_base),
                "employee": str(uif.employee),
                "employer": str(uif.employer),
                "exempt": profile.uif_exempt,
            },
            "sdl": {"amount": str(sdl), "practice_exempt": sdl_exempt},
            "garnishee_orders": len(active_garnishees(garnishees)),
            "other_deductions": str(other),
            "deductions": outcome.to_dict(),
            "warnings": list(warnings),
        }

        return EntryResult(
            employee_id=profile.employee_id,
            tax_year=tax_year,
            base_salary=quantize_money(base),
            additions_total=quantize_money(additions_total),
            gross=gross_rounded,
            fringe_benefits_total=quantize_money(fringe_total),
            taxable_income=quantize_money(taxable_income),
            paye_regular=paye_regular_rounded,
            paye_irregular=paye_irregular_rounded,
            medical_credit=credit_rounded,
            paye=rounded["paye"],
            uif_employee=rounded["uif"],
            uif_employer=quantize_money(uif.employer),
            sdl=quantize_money(sdl),
            retirement=rounded["retirement"],
            medical_aid=rounded["medical_aid"],
            garnishee_total=rounded["garnishee"],
            other_deductions=rounded["other"],
            total_deductions=outcome.total,
            net_pay=outcome.net,
            warnings=warnings,
            breakdown=breakdown,
        )
