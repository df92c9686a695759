"""
Veyro Payroll - Fringe Benefits and Deductions

Fringe benefits add notional value to taxable income; they are never paid
in cash. Garnishee orders attach to disposable income after PAYE and UIF.

Non-statutory deductions are applied in a configurable order
(PAYROLL_DEDUCTION_ORDER). The order does not change net pay, only the
disposable income reported at each step and where warnings are raised.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from app.utils.money import ZERO

STATUTORY_DEDUCTIONS = ("paye", "uif")
NON_STATUTORY_DEDUCTIONS = ("retirement", "medical_aid", "garnishee", "other")


class _FringeLike(Protocol):
    monthly_taxable_value: Decimal

    def is_active_on(self, on_date: date) -> bool: ...


class _GarnisheeLike(Protocol):
    amount: Decimal
    is_active: bool


# ===========================================
# FRINGE BENEFITS
# ===========================================

def active_fringe_benefits(benefits: Iterable[_FringeLike], on_date: date) -> List[_FringeLike]:
    """Benefits with effective_from <= on_date <= effective_to (open end allowed)."""
    return [b for b in benefits if b.is_active_on(on_date)]


def total_fringe_benefits(benefits: Iterable[_FringeLike], on_date: date) -> Decimal:
    return sum((b.monthly_taxable_value for b in active_fringe_benefits(benefits, on_date)), ZERO)


# ===========================================
# GARNISHEE ORDERS
# ===========================================

def active_garnishees(orders: Iterable[_GarnisheeLike]) -> List[_GarnisheeLike]:
    return [o for o in orders if o.is_active]


def total_garnishee(orders: Iterable[_GarnisheeLike]) -> Decimal:
    """Sum of all active orders; simultaneous orders are simply added."""
    return sum((o.amount for o in active_garnishees(orders)), ZERO)


# ===========================================
# DEDUCTION PRECEDENCE
# ===========================================

def normalise_deduction_order(order: Sequence[str]) -> List[str]:
    """
    Validate a configured order of non-statutory deductions.

    Deductions missing from the configuration are appended in the default
    order so every deduction is always applied exactly once.
    """
    unknown = [d for d in order if d not in NON_STATUTORY_DEDUCTIONS]
    if unknown:
        raise ValueError(f"Unknown deductions in order: {', '.join(unknown)}")
    seen: List[str] = []
    for name in list(order) + list(NON_STATUTORY_DEDUCTIONS):
        if name not in seen:
            seen.append(name)
    return seen


@dataclass
class DeductionStep:
    name: str
    amount: Decimal
    disposable_after: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "amount": str(self.amount), "disposable_after": str(self.disposable_after)}


@dataclass
class DeductionOutcome:
    steps: List[DeductionStep]
    total: Decimal
    net: Decimal
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "total": str(self.total),
            "net": str(self.net),
        }


def apply_deduction_policy(
    gross: Decimal,
    amounts: Mapping[str, Decimal],
    order: Sequence[str],
    garnishee_warning_ratio: Optional[Decimal] = None,
) -> DeductionOutcome:
    """
    Subtract statutory deductions, then the others in the configured order.

    Negative disposable income and garnishee orders above the warning
    share of disposable income are flagged, never blocked.
    """
    steps: List[DeductionStep] = []
    warnings: List[str] = []
    disposable = gross

    for name in STATUTORY_DEDUCTIONS:
        amount = amounts.get(name, ZERO)
        disposable -= amount
        steps.append(DeductionStep(name, amount, disposable))

    after_statutory = disposable
    for name in normalise_deduction_order(order):
        amount = amounts.get(name, ZERO)
        if name == "garnishee" and amount > ZERO and garnishee_warning_ratio is not None:
            if disposable <= ZERO or amount > disposable * garnishee_warning_ratio:
                warnings.append(
                    f"Garnishee orders {amount} exceed {garnishee_warning_ratio * 100:.0f}% "
                    f"of disposable income {disposable}"
                )
        was_positive = disposable >= ZERO
        disposable -= amount
        steps.append(DeductionStep(name, amount, disposable))
        if was_positive and disposable < ZERO:
            warnings.append(f"Disposable income becomes negative after {name} deduction")

    if after_statutory < ZERO:
        warnings.append("Statutory deductions exceed gross pay")

    total = gross - disposable
    return DeductionOutcome(steps=steps, total=total, net=disposable, warnings=warnings)
