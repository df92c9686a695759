"""
Veyro Payroll - Tax Table Service

Loads tax year tables from the database and seeds them from the bundled
JSON file. A calculation never proceeds without a complete table set:
missing years raise MissingTaxTablesException.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.tax_tables import (
    MedicalTaxCredit,
    RebateTier as RebateTierEnum,
    StatutoryRate,
    TaxBracket,
    TaxRebate,
)
from app.services.tax_calculators.tax_tables import (
    MedicalCreditRates,
    RebateTier,
    StatutoryRates,
    TaxBand,
    TaxYearTables,
)
from app.utils.error_handling import MissingTaxTablesException

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def resolve_tables_path(path: Optional[str] = None) -> Path:
    """Relative paths are resolved against the project root."""
    candidate = Path(path or settings.tax_tables_path)
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def load_tables_file(path: Optional[str] = None) -> Dict[str, TaxYearTables]:
    """Parse the tax tables JSON file into TaxYearTables keyed by tax year."""
    tables_path = resolve_tables_path(path)
    with tables_path.open("r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = json.load(fh)
    return {tax_year: TaxYearTables.from_dict(tax_year, data) for tax_year, data in raw.items()}


class TaxTableService:
    """Database-backed access to tax year tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_tables(self, tax_year: str) -> TaxYearTables:
        """
        Load the complete table set for a tax year.

        Raises:
            MissingTaxTablesException: if any part of the table set is absent
        """
        brackets = (await self.db.execute(
            select(TaxBracket).where(TaxBracket.tax_year == tax_year).order_by(TaxBracket.lower_bound)
        )).scalars().all()
        rebates = (await self.db.execute(
            select(TaxRebate).where(TaxRebate.tax_year == tax_year)
        )).scalars().all()
        medical = (await self.db.execute(
            select(MedicalTaxCredit).where(MedicalTaxCredit.tax_year == tax_year)
        )).scalar_one_or_none()
        statutory = (await self.db.execute(
            select(StatutoryRate).where(StatutoryRate.tax_year == tax_year)
        )).scalar_one_or_none()

        missing: List[str] = []
        if not brackets:
            missing.append("tax brackets")
        if not rebates:
            missing.append("rebates")
        if medical is None:
            missing.append("medical tax credits")
        if statutory is None:
            missing.append("statutory rates")
        if missing:
            logger.error(f"Incomplete tax tables for {tax_year}: missing {', '.join(missing)}")
            raise MissingTaxTablesException(tax_year, missing)

        return TaxYearTables(
            tax_year=tax_year,
            bands=tuple(
                TaxBand(lower=b.lower_bound, upper=b.upper_bound, base_tax=b.base_tax, rate=b.rate)
                for b in brackets
            ),
            rebates=tuple(
                RebateTier(name=r.tier.value, amount=r.amount, min_age=r.min_age)
                for r in rebates
            ),
            medical_credits=MedicalCreditRates(
                main_member=medical.main_member,
                first_dependent=medical.first_dependent,
                additional_dependent=medical.additional_dependent,
            ),
            statutory=StatutoryRates(
                uif_employee_rate=statutory.uif_employee_rate,
                uif_employer_rate=statutory.uif_employer_rate,
                uif_monthly_ceiling=statutory.uif_monthly_ceiling,
                sdl_rate=statutory.sdl_rate,
                sdl_annual_threshold=statutory.sdl_annual_threshold,
                retirement_cap_rate=statutory.retirement_cap_rate,
            ),
        )

    async def has_tables(self, tax_year: str) -> bool:
        count = (await self.db.execute(
            select(func.count(TaxBracket.id)).where(TaxBracket.tax_year == tax_year)
        )).scalar_one()
        return count > 0

    async def save_tables(self, tables: TaxYearTables) -> None:
        """Insert one tax year's tables. Existing years are left untouched."""
        if await self.has_tables(tables.tax_year):
            logger.info(f"Tax tables for {tables.tax_year} already present, skipping")
            return

        for band in tables.bands:
            self.db.add(TaxBracket(
                tax_year=tables.tax_year,
                lower_bound=band.lower,
                upper_bound=band.upper,
                base_tax=band.base_tax,
                rate=band.rate,
            ))
        for rebate in tables.rebates:
            self.db.add(TaxRebate(
                tax_year=tables.tax_year,
                tier=RebateTierEnum(rebate.name),
                amount=rebate.amount,
                min_age=rebate.min_age,
            ))
        mc = tables.medical_credits
        self.db.add(MedicalTaxCredit(
            tax_year=tables.tax_year,
            main_member=mc.main_member,
            first_dependent=mc.first_dependent,
            additional_dependent=mc.additional_dependent,
        ))
        st = tables.statutory
        self.db.add(StatutoryRate(
            tax_year=tables.tax_year,
            uif_employee_rate=st.uif_employee_rate,
            uif_employer_rate=st.uif_employer_rate,
            uif_monthly_ceiling=st.uif_monthly_ceiling,
            sdl_rate=st.sdl_rate,
            sdl_annual_threshold=st.sdl_annual_threshold,
            retirement_cap_rate=st.retirement_cap_rate,
        ))
        logger.info(f"Seeded tax tables for {tables.tax_year}")

    async def seed_from_file(self, path: Optional[str] = None) -> List[str]:
        """Seed every tax year in the tables file. Returns the years in the file."""
        all_tables = load_tables_file(path)
        for tables in all_tables.values():
            await self.save_tables(tables)
        await self.db.commit()
        return sorted(all_tables)
