"""
Veyro Payroll - Tax Year Tables

In-memory, versioned view of the statutory tables for one tax year.
Calculators receive a TaxYearTables instance; they never read constants.

The tax year runs from 1 March to the last day of February by default
(configurable through TAX_YEAR_START_MONTH / TAX_YEAR_START_DAY).
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.config import settings
from app.utils.error_handling import ConfigurationException, MissingTaxTablesException
from app.utils.money import to_decimal


@dataclass(frozen=True)
class TaxBand:
    """
    One tax band.

    Income in (lower, upper] pays base_tax + (income - lower) * rate.
    """
    lower: Decimal
    upper: Optional[Decimal]
    base_tax: Decimal
    rate: Decimal

    def contains(self, income: Decimal) -> bool:
        if income < self.lower:
            return False
        return self.upper is None or income <= self.upper

    def calculate_tax(self, income: Decimal) -> Decimal:
        """Tax for an income that falls in this band."""
        return self.base_tax + (income - self.lower) * self.rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lower": str(self.lower),
            "upper": str(self.upper) if self.upper is not None else None,
            "base_tax": str(self.base_tax),
            "rate": str(self.rate),
        }


@dataclass(frozen=True)
class RebateTier:
    """Annual rebate granted from min_age onwards."""
    name: str
    amount: Decimal
    min_age: int = 0


@dataclass(frozen=True)
class MedicalCreditRates:
    """Monthly medical scheme fees tax credit amounts."""
    main_member: Decimal
    first_dependent: Decimal
    additional_dependent: Decimal


@dataclass(frozen=True)
class StatutoryRates:
    """UIF and SDL parameters."""
    uif_employee_rate: Decimal
    uif_employer_rate: Decimal
    uif_monthly_ceiling: Decimal
    sdl_rate: Decimal
    sdl_annual_threshold: Decimal
    retirement_cap_rate: Decimal


@dataclass(frozen=True)
class TaxYearTables:
    """Everything the calculators need for one tax year."""
    tax_year: str
    bands: Tuple[TaxBand, ...]
    rebates: Tuple[RebateTier, ...]
    medical_credits: MedicalCreditRates
    statutory: StatutoryRates

    def __post_init__(self):
        if not self.bands:
            raise MissingTaxTablesException(self.tax_year, ["tax brackets"])
        ordered = sorted(self.bands, key=lambda b: b.lower)
        for previous, current in zip(ordered, ordered[1:]):
            if previous.upper is None or previous.upper != current.lower:
                raise ConfigurationException(
                    f"Tax brackets for {self.tax_year} are not contiguous at {current.lower}",
                    details={"tax_year": self.tax_year},
                )
        if ordered[-1].upper is not None:
            raise ConfigurationException(
                f"Top tax bracket for {self.tax_year} must be open-ended",
                details={"tax_year": self.tax_year},
            )
        object.__setattr__(self, "bands", tuple(ordered))
        object.__setattr__(self, "rebates", tuple(sorted(self.rebates, key=lambda r: r.min_age)))

    @classmethod
    def from_dict(cls, tax_year: str, data: Mapping[str, Any]) -> "TaxYearTables":
        """
        Build tables from the JSON layout used in app/data/tax_tables.json.

        Raises MissingTaxTablesException when a section is absent.
        """
        missing = [key for key in ("brackets", "rebates", "medical_credits", "statutory") if not data.get(key)]
        if missing:
            raise MissingTaxTablesException(tax_year, missing)

        bands = tuple(
            TaxBand(
                lower=to_decimal(b["lower"]),
                upper=to_decimal(b["upper"]) if b.get("upper") is not None else None,
                base_tax=to_decimal(b["base_tax"]),
                rate=to_decimal(b["rate"]),
            )
            for b in data["brackets"]
        )
        rebates = tuple(
            RebateTier(name=r["tier"], amount=to_decimal(r["amount"]), min_age=int(r.get("min_age", 0)))
            for r in data["rebates"]
        )
        mc = data["medical_credits"]
        st = data["statutory"]
        return cls(
            tax_year=tax_year,
            bands=bands,
            rebates=rebates,
            medical_credits=MedicalCreditRates(
                main_member=to_decimal(mc["main_member"]),
                first_dependent=to_decimal(mc["first_dependent"]),
                additional_dependent=to_decimal(mc["additional_dependent"]),
            ),
            statutory=StatutoryRates(
                uif_employee_rate=to_decimal(st["uif_employee_rate"]),
                uif_employer_rate=to_decimal(st["uif_employer_rate"]),
                uif_monthly_ceiling=to_decimal(st["uif_monthly_ceiling"]),
                sdl_rate=to_decimal(st["sdl_rate"]),
                sdl_annual_threshold=to_decimal(st["sdl_annual_threshold"]),
                retirement_cap_rate=to_decimal(st["retirement_cap_rate"]),
            ),
        )


@dataclass
class TaxTableRegistry:
    """Tax-year keyed lookup of tables; adding a year is adding data."""
    tables: Dict[str, TaxYearTables] = field(default_factory=dict)

    def register(self, tables: TaxYearTables) -> None:
        self.tables[tables.tax_year] = tables

    def get(self, tax_year: str) -> TaxYearTables:
        try:
            return self.tables[tax_year]
        except KeyError:
            raise MissingTaxTablesException(tax_year) from None

    def __contains__(self, tax_year: str) -> bool:
        return tax_year in self.tables

    @property
    def tax_years(self) -> List[str]:
        return sorted(self.tables)


# ===========================================
# TAX YEAR ARITHMETIC
# ===========================================

def _tax_year_start(calendar_year: int) -> date:
    return date(calendar_year, settings.tax_year_start_month, settings.tax_year_start_day)


def tax_year_for(on_date: date) -> str:
    """Tax year label ("2024/2025") containing the given date."""
    start_year = on_date.year if on_date >= _tax_year_start(on_date.year) else on_date.year - 1
    return f"{start_year}/{start_year + 1}"


def tax_year_for_period(month: int, year: int) -> str:
    """Tax year of a monthly pay period."""
    return tax_year_for(period_reference_date(month, year))


def tax_year_bounds(tax_year: str) -> Tuple[date, date]:
    """First and last day of a tax year."""
    start_year = parse_tax_year(tax_year)
    start = _tax_year_start(start_year)
    end = _tax_year_start(start_year + 1) - timedelta(days=1)
    return start, end


def parse_tax_year(tax_year: str) -> int:
    """Return the starting calendar year of a "YYYY/YYYY" (or "YYYY-YYYY") label."""
    parts = tax_year.replace("-", "/").split("/")
    if len(parts) != 2 or not all(p.isdigit() for p in parts) or int(parts[1]) != int(parts[0]) + 1:
        raise ValueError(f"Invalid tax year: {tax_year!r}")
    return int(parts[0])


def period_reference_date(month: int, year: int) -> date:
    """Day of the pay month on which benefits are evaluated."""
    return date(year, month, settings.pay_period_reference_day)


def age_on(date_of_birth: Optional[date], on_date: date) -> Optional[int]:
    """Completed years of age, None when the birth date is unknown."""
    if date_of_birth is None:
        return None
    years = on_date.year - date_of_birth.year
    if (on_date.month, on_date.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years
