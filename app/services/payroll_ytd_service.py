"""
Veyro Payroll - Year-to-Date Ledger Service

Accumulates paid payroll entries into one EmployeeYTD row per employee per
tax year. Rows are created at the first contribution and only ever
incremented. Applying is part of the PAID transition's transaction; this
service never commits.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.payroll import Employee, EmployeeYTD, PayrollEntry, PayrollRun
from app.utils.error_handling import ErrorCode, StateConflictException
from app.utils.money import ZERO

logger = logging.getLogger(__name__)

# EmployeeYTD column -> PayrollEntry attribute
YTD_FIELDS: Dict[str, str] = {
    "ytd_gross": "gross",
    "ytd_taxable_income": "taxable_income",
    "ytd_irregular_payments": "additions_total",
    "ytd_paye": "paye",
    "ytd_uif_employee": "uif_employee",
    "ytd_uif_employer": "uif_employer",
    "ytd_sdl": "sdl",
    "ytd_retirement": "retirement",
    "ytd_medical_aid": "medical_aid",
    "ytd_medical_credits": "medical_credit",
    "ytd_fringe_benefits": "fringe_benefits_total",
}


def ytd_totals(ytd: EmployeeYTD) -> Dict[str, Any]:
    totals: Dict[str, Any] = {"tax_year": ytd.tax_year}
    totals.update({column: getattr(ytd, column) for column in YTD_FIELDS})
    return totals

class PayrollYTDService:
    """Year-to-date ledger access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_ytd(self, employee_id: uuid.UUID, tax_year: str) -> Optional[EmployeeYTD]:
        result = await self.db.execute(
            select(EmployeeYTD).where(
                EmployeeYTD.employee_id == employee_id,
                EmployeeYTD.tax_year == tax_year,
            )
        )
        return result.scalar_one_or_none()

    async def get_irregular_totals(self, employee_ids: Iterable[uuid.UUID], tax_year: str) -> Dict[uuid.UUID, Decimal]:
        """Irregular payments already taxed this tax year, per employee."""
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await self.db.execute(
            select(EmployeeYTD.employee_id, EmployeeYTD.ytd_irregular_payments).where(
                EmployeeYTD.employee_id.in_(ids),
                EmployeeYTD.tax_year == tax_year,
            )
        )
        return {employee_id: amount for employee_id, amount in result.all()}

    async def list_for_practice(self, practice_id: uuid.UUID, tax_year: str) -> List[EmployeeYTD]:
        """YTD rows of a practice's employees, with the employee loaded, by name."""
        result = await self.db.execute(
            select(EmployeeYTD)
            .join(Employee, EmployeeYTD.employee_id == Employee.id)
            .options(selectinload(EmployeeYTD.employee))
            .where(
                Employee.practice_id == practice_id,
                EmployeeYTD.tax_year == tax_year,
            )
            .order_by(Employee.full_name)
        )
        return list(result.scalars().all())

    async def apply_run(self, run: PayrollRun, entries: Iterable[PayrollEntry]) -> List[EmployeeYTD]:
        """
        Add each entry of a run to its employee's YTD row.

        Raises:
            StateConflictException: if the run was already applied to a row
        """
        run_id = str(run.id)
        updated = []
        for entry in entries:
            ytd = await self.get_ytd(entry.employee_id, run.tax_year)
            if ytd is None:
                ytd = EmployeeYTD(
                    employee_id=entry.employee_id,
                    tax_year=run.tax_year,
                    applied_run_ids=[],
                    **{column: ZERO for column in YTD_FIELDS},
                )
                self.db.add(ytd)
            elif run_id in (ytd.applied_run_ids or []):
                raise StateConflictException(
                    f"Payroll run {run.id} already accumulated for employee {entry.employee_id}",
                    current_status=run.status.value,
                    code=ErrorCode.ALREADY_APPLIED,
                )

            for column, attribute in YTD_FIELDS.items():
                setattr(ytd, column, getattr(ytd, column) + getattr(entry, attribute))
            # Reassign so the JSON column is flagged dirty
            ytd.applied_run_ids = list(ytd.applied_run_ids or []) + [run_id]
            updated.append(ytd)

        await self.db.flush()
        logger.info(f"Applied payroll run {run.id} to YTD ledger for {len(updated)} employees ({run.tax_year})")
        return updated
