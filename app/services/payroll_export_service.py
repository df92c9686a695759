"""
Veyro Payroll - Statutory Export Service

CSV exports built from committed payroll state:
- Bank payment file (one row per entry, net pay)
- Accountant export (every deduction broken out, with totals)
- EMP201 monthly employer declaration (PAYE, UIF, SDL)
- EMP501 annual employer reconciliation (per-employee YTD)
- IRP5 individual tax certificate

Exports are read-only and return (content, filename) tuples.
"""

import csv
import io
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.payroll import PayrollEntry, PayrollRun
from app.models.practice import Practice
from app.services.payroll_service import PayrollService, checked_tax_year
from app.services.tax_calculators import tax_year_bounds
from app.utils.error_handling import MissingBankDetailsException, NotFoundException
from app.utils.money import format_money, sum_money

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]

BANK_COLUMNS = ["Employee Name", "Bank Name", "Account Number", "Branch Code", "Amount", "Reference"]

ACCOUNTANT_COLUMNS = [
    "Employee Number", "Employee Name", "Gross", "Fringe Benefits", "Taxable Income",
    "PAYE", "UIF Employee", "Retirement", "Medical Aid", "Garnishee",
    "Other Deductions", "Total Deductions", "Net Pay", "UIF Employer", "SDL",
]

RECONCILIATION_COLUMNS = [
    "Employee Name", "Employee Number", "Tax Number", "Gross Income", "Taxable Income",
    "PAYE", "UIF Employee", "UIF Employer", "SDL", "Retirement", "Medical Aid",
]


def declaration_due_date(month: int, year: int) -> date:
    """Declaration is due on a fixed day of the following month."""
    if month == 12:
        return date(year + 1, 1, settings.declaration_due_day)
    return date(year, month + 1, settings.declaration_due_day)


def payment_reference(month: int, year: int) -> str:
    return f"Salary {MONTH_ABBREVIATIONS[month - 1]} {year}"


def _tax_year_slug(tax_year: str) -> str:
    return tax_year.replace("/", "-")


class PayrollExportService:
    """Generates statutory and bookkeeping exports."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.payroll = PayrollService(db)

    async def _get_practice(self, practice_id: uuid.UUID) -> Practice:
        practice = await self.db.get(Practice, practice_id)
        if practice is None:
            raise NotFoundException("Practice", practice_id)
        return practice

    async def _run_with_entries(self, run_id: uuid.UUID) -> Tuple[PayrollRun, List[PayrollEntry]]:
        run = await self.payroll.get_run(run_id)
        entries = await self.payroll.list_entries(run.id)
        return run, entries

    # ===========================================
    # BANK PAYMENT FILE
    # ===========================================

    async def export_bank_payments(self, run_id: uuid.UUID) -> Tuple[bytes, str]:
        """
        Bank bulk-payment file with the net pay of every entry.

        Raises:
            MissingBankDetailsException: listing every employee without
                bank name, account number or branch code
        """
        run, entries = await self._run_with_entries(run_id)

        missing = [
            entry.employee.full_name
            for entry in entries
            if not (entry.employee.bank_name and entry.employee.bank_account_number and entry.employee.bank_branch_code)
        ]
        if missing:
            raise MissingBankDetailsException(missing)

        reference = payment_reference(run.month, run.year)
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(BANK_COLUMNS)
        for entry in entries:
            employee = entry.employee
            writer.writerow([
                employee.full_name,
                employee.bank_name,
                employee.bank_account_number,
                employee.bank_branch_code,
                format_money(entry.net_pay),
                reference,
            ])

        content = buffer.getvalue().encode("utf-8")
        filename = f"bank_payments_{run.year}_{run.month:02d}.csv"
        return content, filename

    # ===========================================
    # ACCOUNTANT EXPORT
    # ===========================================

    async def export_accountant(self, run_id: uuid.UUID) -> Tuple[bytes, str]:
        """Per-entry breakdown for bookkeeping, followed by a TOTALS row."""
        run, entries = await self._run_with_entries(run_id)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(ACCOUNTANT_COLUMNS)
        for entry in entries:
            writer.writerow([
                entry.employee.employee_number,
                entry.employee.full_name,
                format_money(entry.gross),
                format_money(entry.fringe_benefits_total),
                format_money(entry.taxable_income),
                format_money(entry.paye),
                format_money(entry.uif_employee),
                format_money(entry.retirement),
                format_money(entry.medical_aid),
                format_money(entry.garnishee_total),
                format_money(entry.other_deductions),
                format_money(entry.total_deductions),
                format_money(entry.net_pay),
                format_money(entry.uif_employer),
                format_money(entry.sdl),
            ])

        writer.writerow([
            "TOTALS",
            "",
            format_money(sum_money(e.gross for e in entries)),
            format_money(sum_money(e.fringe_benefits_total for e in entries)),
            format_money(sum_money(e.taxable_income for e in entries)),
            format_money(sum_money(e.paye for e in entries)),
            format_money(sum_money(e.uif_employee for e in entries)),
            format_money(sum_money(e.retirement for e in entries)),
            format_money(sum_money(e.medical_aid for e in entries)),
            format_money(sum_money(e.garnishee_total for e in entries)),
            format_money(sum_money(e.other_deductions for e in entries)),
            format_money(sum_money(e.total_deductions for e in entries)),
            format_money(sum_money(e.net_pay for e in entries)),
            format_money(sum_money(e.uif_employer for e in entries)),
            format_money(sum_money(e.sdl for e in entries)),
        ])

        content = buffer.getvalue().encode("utf-8")
        filename = f"payroll_accountant_{run.year}_{run.month:02d}.csv"
        return content, filename

    # ===========================================
    # EMP201 - MONTHLY DECLARATION
    # ===========================================

    async def export_monthly_declaration(self, run_id: uuid.UUID) -> Tuple[bytes, str]:
        """Monthly employer declaration of PAYE, UIF and SDL owed."""
        run, entries = await self._run_with_entries(run_id)
        practice = await self._get_practice(run.practice_id)

        paye = sum_money(e.paye for e in entries)
        uif_employee = sum_money(e.uif_employee for e in entries)
        uif_employer = sum_money(e.uif_employer for e in entries)
        sdl = sum_money(e.sdl for e in entries)
        total_due = paye + uif_employee + uif_employer + sdl

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["EMP201 - Monthly Employer Declaration"])
        writer.writerow([])
        writer.writerow(["Practice Name", practice.name])
        writer.writerow(["PAYE Reference", practice.paye_reference_number or "N/A"])
        writer.writerow(["Period", f"{run.month}/{run.year}"])
        writer.writerow(["Tax Year", run.tax_year])
        writer.writerow(["Status", run.status.value])
        writer.writerow([])
        writer.writerow(["Description", "Amount (R)"])
        writer.writerow(["Total PAYE", format_money(paye)])
        writer.writerow(["Total UIF - Employee", format_money(uif_employee)])
        writer.writerow(["Total UIF - Employer", format_money(uif_employer)])
        writer.writerow(["Total SDL", format_money(sdl)])
        writer.writerow([])
        writer.writerow(["Total Amount Due", format_money(total_due)])
        writer.writerow(["Due Date", declaration_due_date(run.month, run.year).isoformat()])
        writer.writerow([])
        writer.writerow(["Employee Count", len(entries)])

        content = buffer.getvalue().encode("utf-8")
        filename = f"emp201_{run.year}_{run.month:02d}.csv"
        return content, filename

    # ===========================================
    # EMP501 - ANNUAL RECONCILIATION
    # ===========================================

    async def export_annual_reconciliation(self, practice_id: uuid.UUID, tax_year: str) -> Tuple[bytes, str]:
        """Per-employee YTD figures for a tax year, followed by totals."""
        tax_year = checked_tax_year(tax_year)
        practice = await self._get_practice(practice_id)
        start, end = tax_year_bounds(tax_year)

        ytds = await self.payroll.ytd.list_for_practice(practice_id, tax_year)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["EMP501 - Annual Employer Reconciliation"])
        writer.writerow(["Tax Year", tax_year])
        writer.writerow(["Period", start.isoformat(), end.isoformat()])
        writer.writerow(["Practice", practice.name])
        writer.writerow(["PAYE Reference", practice.paye_reference_number or "N/A"])
        writer.writerow([])
        writer.writerow(RECONCILIATION_COLUMNS)

        for ytd in ytds:
            employee = ytd.employee
            writer.writerow([
                employee.full_name,
                employee.employee_number,
                employee.tax_number or "",
                format_money(ytd.ytd_gross),
                format_money(ytd.ytd_taxable_income),
                format_money(ytd.ytd_paye),
                format_money(ytd.ytd_uif_employee),
                format_money(ytd.ytd_uif_employer),
                format_money(ytd.ytd_sdl),
                format_money(ytd.ytd_retirement),
                format_money(ytd.ytd_medical_aid),
            ])

        writer.writerow([])
        writer.writerow([
            "TOTALS",
            len(ytds),
            "",
            format_money(sum_money(y.ytd_gross for y in ytds)),
            format_money(sum_money(y.ytd_taxable_income for y in ytds)),
            format_money(sum_money(y.ytd_paye for y in ytds)),
            format_money(sum_money(y.ytd_uif_employee for y in ytds)),
            format_money(sum_money(y.ytd_uif_employer for y in ytds)),
            format_money(sum_money(y.ytd_sdl for y in ytds)),
            format_money(sum_money(y.ytd_retirement for y in ytds)),
            format_money(sum_money(y.ytd_medical_aid for y in ytds)),
        ])

        content = buffer.getvalue().encode("utf-8")
        filename = f"emp501_{_tax_year_slug(tax_year)}.csv"
        return content, filename

    # ===========================================
    # IRP5 - INDIVIDUAL CERTIFICATE
    # ===========================================

    async def export_tax_certificate(
        self,
        employee_id: uuid.UUID,
        tax_year: str,
        generated_at: Optional[datetime] = None,
    ) -> Tuple[bytes, str]:
        """
        Tax certificate for one employee and tax year, from the YTD ledger.

        The certificate number is the tax year, the employee number and a
        base-36 generation timestamp.

        Raises:
            NotFoundException: employee unknown, or nothing paid in the tax year
        """
        tax_year = checked_tax_year(tax_year)
        ytd = await self.payroll.get_employee_ytd(employee_id, tax_year)
        employee = await self.payroll.get_employee(employee_id)
        practice = await self._get_practice(employee.practice_id)

        generated_at = generated_at or datetime.now(timezone.utc)
        certificate_number = "-".join([
            tax_year.replace("/", ""),
            employee.employee_number,
            _base36(int(generated_at.timestamp() * 1000)),
        ])
        start, end = tax_year_bounds(tax_year)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["IRP5 - Employee Tax Certificate"])
        writer.writerow(["Certificate Number", certificate_number])
        writer.writerow(["Tax Year", tax_year])
        writer.writerow(["Period", start.isoformat(), end.isoformat()])
        writer.writerow([])
        writer.writerow(["Employer", practice.name])
        writer.writerow(["PAYE Reference", practice.paye_reference_number or "N/A"])
        writer.writerow(["Employee", employee.full_name])
        writer.writerow(["Employee Number", employee.employee_number])
        writer.writerow(["Tax Number", employee.tax_number or ""])
        writer.writerow(["Date of Birth", employee.date_of_birth.isoformat() if employee.date_of_birth else ""])
        writer.writerow([])
        writer.writerow(["Description", "Amount (R)"])
        writer.writerow(["Gross Remuneration", format_money(ytd.ytd_gross)])
        writer.writerow(["Fringe Benefits", format_money(ytd.ytd_fringe_benefits)])
        writer.writerow(["Taxable Income", format_money(ytd.ytd_taxable_income)])
        writer.writerow(["PAYE", format_money(ytd.ytd_paye)])
        writer.writerow(["UIF", format_money(ytd.ytd_uif_employee)])
        writer.writerow(["Retirement Fund Contributions", format_money(ytd.ytd_retirement)])
        writer.writerow(["Medical Aid Contributions", format_money(ytd.ytd_medical_aid)])
        writer.writerow(["Medical Tax Credits", format_money(ytd.ytd_medical_credits)])
        writer.writerow([])
        writer.writerow(["Generated", generated_at.isoformat()])

        content = buffer.getvalue().encode("utf-8")
        filename = f"irp5_{employee.employee_number}_{_tax_year_slug(tax_year)}.csv"
        return content, filename


def _base36(value: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if value == 0:
        return "0"
    encoded = ""
    while value:
        value, remainder = divmod(value, 36)
        encoded = digits[remainder] + encoded
    return encoded
