"""
Veyro Payroll - Payroll Service

Payroll run orchestration with South African statutory compliance.

Run lifecycle:
1. DRAFT - entries are regenerated on every recalculation. Recalculating
   with unchanged inputs yields identical entries.
2. PROCESSED - amounts final, locked against recalculation. Requires the
   run to pass validation (every employee has a tax number).
3. PAID - terminal. The run's entries are added to the YTD ledger in the
   same transaction as the status change.

Status changes use compare-and-set on the current status, so two callers
racing from the same status cannot both succeed.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.payroll import (
    AdditionCategory, Employee, EmployeeYTD, FringeBenefit, FringeBenefitCategory,
    GarnisheeDeduction, PayrollAddition, PayrollEntry, PayrollRun, PayrollStatus,
)
from app.models.practice import Practice
from app.services.payroll_audit_service import PayrollAuditService
from app.services.payroll_entry_calculator import (
    AdditionInput,
    CompensationProfile,
    PayrollEntryCalculator,
)
from app.services.payroll_state_machine import ensure_editable, ensure_transition
from app.services.payroll_ytd_service import PayrollYTDService, ytd_totals
from app.services.tax_calculators import (
    is_sdl_exempt,
    parse_tax_year,
    projected_annual_payroll,
    tax_year_for_period,
)
from app.services.tax_table_service import TaxTableService
from app.utils.error_handling import (
    ConflictException,
    ErrorCode,
    NotFoundException,
    StateConflictException,
    ValidationException,
    validate_amount,
    validate_date_range,
)
from app.utils.money import ZERO, sum_money

logger = logging.getLogger(__name__)


# Run total column -> entry attribute
RUN_TOTAL_FIELDS: Dict[str, str] = {
    "total_gross": "gross",
    "total_taxable_income": "taxable_income",
    "total_paye": "paye",
    "total_uif_employee": "uif_employee",
    "total_uif_employer": "uif_employer",
    "total_sdl": "sdl",
    "total_retirement": "retirement",
    "total_medical_aid": "medical_aid",
    "total_garnishee": "garnishee_total",
    "total_other_deductions": "other_deductions",
    "total_deductions": "total_deductions",
    "total_net": "net_pay",
    "total_employer_contributions": "employer_contributions",
}


@dataclass
class RunValidation:
    """Result of validating a payroll run before it is processed."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class PayslipLine:
    name: str
    amount: Decimal
    description: Optional[str] = None


@dataclass
class Payslip:
    """One employee's payslip for one payroll run."""
    entry_id: uuid.UUID
    payroll_run_id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: str
    employee_number: str
    tax_number: Optional[str]
    practice_name: str
    month: int
    year: int
    tax_year: str
    status: PayrollStatus
    earnings: List[PayslipLine]
    gross: Decimal
    fringe_benefits_total: Decimal
    taxable_income: Decimal
    deductions: List[PayslipLine]
    total_deductions: Decimal
    net_pay: Decimal
    medical_credit: Decimal
    employer_contributions: List[PayslipLine]
    total_employer_contributions: Decimal
    ytd: Optional[Dict[str, Any]] = None


# Payslip deduction label -> entry attribute; PAYE and UIF always shown
PAYSLIP_DEDUCTIONS: List[Tuple[str, str]] = [
    ("PAYE", "paye"),
    ("UIF", "uif_employee"),
    ("Retirement Fund", "retirement"),
    ("Medical Aid", "medical_aid"),
    ("Garnishee Orders", "garnishee_total"),
    ("Other Deductions", "other_deductions"),
]


def checked_tax_year(tax_year: str) -> str:
    """Normalise "2024-2025" or "2024/2025" to "2024/2025"."""
    try:
        start_year = parse_tax_year(tax_year)
    except ValueError as e:
        raise ValidationException(str(e), field="tax_year") from e
    return f"{start_year}/{start_year + 1}"


def build_payslip(entry: PayrollEntry, run: PayrollRun, practice: Practice, ytd: Optional[EmployeeYTD] = None) -> Payslip:
    """
    Payslip view of a calculated entry.

    Earnings lines add up to gross and deduction lines to total deductions.
    The YTD block is the ledger row, so it only reflects PAID runs.
    """
    earnings = [PayslipLine("Basic Salary", entry.base_salary)]
    for addition in entry.additions:
        earnings.append(PayslipLine(
            addition.category.value.replace("_", " ").title(),
            addition.amount,
            addition.description,
        ))

    deductions = [
        PayslipLine(name, getattr(entry, attribute))
        for name, attribute in PAYSLIP_DEDUCTIONS
        if attribute in ("paye", "uif_employee") or getattr(entry, attribute) != ZERO
    ]

    employer_contributions = [PayslipLine("UIF - Employer", entry.uif_employer)]
    if entry.sdl != ZERO:
        employer_contributions.append(PayslipLine("SDL", entry.sdl))

    employee = entry.employee
    return Payslip(
        entry_id=entry.id,
        payroll_run_id=run.id,
        employee_id=employee.id,
        employee_name=employee.full_name,
        employee_number=employee.employee_number,
        tax_number=employee.tax_number,
        practice_name=practice.name,
        month=run.month,
        year=run.year,
        tax_year=run.tax_year,
        status=run.status,
        earnings=earnings,
        gross=entry.gross,
        fringe_benefits_total=entry.fringe_benefits_total,
        taxable_income=entry.taxable_income,
        deductions=deductions,
        total_deductions=entry.total_deductions,
        net_pay=entry.net_pay,
        medical_credit=entry.medical_credit,
        employer_contributions=employer_contributions,
        total_employer_contributions=entry.employer_contributions,
        ytd=ytd_totals(ytd) if ytd is not None else None,
    )


def run_totals(
entries: List[Any]) -> Dict[str, Decimal]:
    """Sum of every aggregated field over the entries."""
    return {
        column: sum_money(getattr(entry, attribute) for entry in entries)
        for column, attribute in RUN_TOTAL_FIELDS.items()
    }


class PayrollService:
    """Service for payroll run operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = PayrollAuditService(db)
        self.ytd = PayrollYTDService(db)
        self.tax_tables = TaxTableService(db)

    # ===========================================
    # LOOKUPS
    # ===========================================

    async def get_run(self, run_id: uuid.UUID, for_update: bool = False) -> PayrollRun:
        query = select(PayrollRun).where(PayrollRun.id == run_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFoundException("PayrollRun", run_id)
        return run

    async def get_run_for_period(
        self,
        practice_id: uuid.UUID,
        month: int,
        year: int,
        for_update: bool = False,
    ) -> Optional[PayrollRun]:
        query = select(PayrollRun).where(
            PayrollRun.practice_id == practice_id,
            PayrollRun.month == month,
            PayrollRun.year == year,
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_runs(self, practice_id: uuid.UUID, tax_year: Optional[str] = None) -> List[PayrollRun]:
        query = select(PayrollRun).where(PayrollRun.practice_id == practice_id)
        if tax_year:
            query = query.where(PayrollRun.tax_year == tax_year)
        result = await self.db.execute(query.order_by(PayrollRun.year, PayrollRun.month))
        return list(result.scalars().all())

    async def list_entries(self, run_id: uuid.UUID) -> List[PayrollEntry]:
        """Entries of a run with their additions and employees, by employee number."""
        result = await self.db.execute(
            select(PayrollEntry)
            .join(Employee, PayrollEntry.employee_id == Employee.id)
            .options(
                selectinload(PayrollEntry.additions),
                selectinload(PayrollEntry.employee),
            )
            .where(PayrollEntry.payroll_run_id == run_id)
            .order_by(Employee.employee_number)
        )
        return list(result.scalars().all())

    async def _get_practice(self, practice_id: uuid.UUID) -> Practice:
        practice = await self.db.get(Practice, practice_id)
        if practice is None:
            raise NotFoundException("Practice", practice_id)
        return practice

    async def get_employee(self, employee_id: uuid.UUID) -> Employee:
        employee = await self.db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    async def _active_employees(self, practice_id: uuid.UUID) -> List[Employee]:
        result = await self.db.execute(
            select(Employee)
            .options(
                selectinload(Employee.fringe_benefits),
                selectinload(Employee.garnishees),
            )
            .where(
                Employee.practice_id == practice_id,
                Employee.is_active == True,  # noqa: E712
            )
            .order_by(Employee.employee_number)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _additions_by_employee(self, run_id: uuid.UUID) -> Dict[uuid.UUID, List[AdditionInput]]:
        """User-entered additions of a run, keyed by employee."""
        result = await self.db.execute(
            select(PayrollAddition, PayrollEntry.employee_id)
            .join(PayrollEntry, PayrollAddition.payroll_entry_id == PayrollEntry.id)
            .where(PayrollEntry.payroll_run_id == run_id)
            .order_by(PayrollAddition.sequence)
        )
        snapshot: Dict[uuid.UUID, List[AdditionInput]] = {}
        for addition, employee_id in result.all():
            snapshot.setdefault(employee_id, []).append(
                AdditionInput(
                    category=addition.category.value,
                    amount=addition.amount,
                    sequence=addition.sequence,
                    description=addition.description,
                )
            )
        return snapshot

    # ===========================================
    # RECALCULATION
    # ===========================================

    async def recalculate_run(self, practice_id: uuid.UUID, month: int, year: int) -> PayrollRun:
        """
        Create or regenerate the payroll run for a practice and month.

        Every entry is deleted and recalculated from current inputs. User
        entered additions are carried over to the new entries. The whole
        recalculation is one transaction.

        Raises:
            ValidationException: invalid period or inputs
            StateConflictException: the run is not a draft
            ConfigurationException: no tax tables for the tax year
        """
        if not 1 <= month <= 12:
            raise ValidationException(f"Invalid month: {month}", field="month")

        practice = await self._get_practice(practice_id)
        tax_year = tax_year_for_period(month, year)
        # Halts the whole run before anything is written
        tables = await self.tax_tables.get_tables(tax_year)

        try:
            run = await self.get_run_for_period(practice_id, month, year, for_update=True)
            if run is None:
                run = PayrollRun(
                    id=uuid.uuid4(),
                    practice_id=practice_id,
                    month=month,
                    year=year,
                    tax_year=tax_year,
                    status=PayrollStatus.DRAFT,
                )
                self.db.add(run)
                await self.db.flush()
                logger.info(f"Created payroll run {run.id} for practice {practice_id} {year}-{month:02d}")
            else:
                ensure_editable(run.status, "recalculate")

            additions = await self._additions_by_employee(run.id)
            await self._delete_entries(run.id)

            employees = await self._active_employees(practice_id)
            dropped = set(additions) - {e.id for e in employees}
            if dropped:
                logger.warning(f"Dropping additions of {len(dropped)} inactive employees from run {run.id}")

            sdl_exempt = is_sdl_exempt(
                tables.statutory,
                projected_annual_payroll(e.monthly_salary for e in employees),
                practice.sdl_exempt,
            )
            ytd_irregular = await self.ytd.get_irregular_totals([e.id for e in employees], tax_year)
            calculator = PayrollEntryCalculator(
                tables,
                deduction_order=settings.deduction_order_list,
                garnishee_warning_ratio=settings.garnishee_warning_ratio,
            )

            entries = []
            for employee in employees:
                employee_additions = additions.get(employee.id, [])
                result = calculator.calculate(
                    CompensationProfile.from_employee(employee),
                    month,
                    year,
                    additions=employee_additions,
                    fringe_benefits=employee.fringe_benefits,
                    garnishees=employee.garnishees,
                    ytd_irregular_before=ytd_irregular.get(employee.id, ZERO),
                    sdl_exempt=sdl_exempt,
                )
                entry = PayrollEntry(
                    id=uuid.uuid4(),
                    payroll_run_id=run.id,
                    **result.entry_values(),
                    additions=[
                        PayrollAddition(
                            category=AdditionCategory(a.category),
                            amount=a.amount,
                            description=a.description,
                            sequence=a.sequence,
                        )
                        for a in employee_additions
                    ],
                )
                self.db.add(entry)
                self.audit.record_entry_calculation(
                    payroll_run_id=run.id,
                    payroll_entry_id=entry.id,
                    employee_id=employee.id,
                    tax_year=tax_year,
                    breakdown=result.breakdown,
                )
                entries.append(entry)

            self._apply_totals(run, entries)
            run.sdl_exempt = sdl_exempt
            run.calculated_at = datetime.now(timezone.utc)

            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictException(
                f"Payroll run for {year}-{month:02d} was created concurrently",
                resource_type="PayrollRun",
                code=ErrorCode.DUPLICATE_ENTRY,
            ) from e
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Recalculated payroll run {run.id}: {run.total_employees} entries, "
            f"gross {run.total_gross}, PAYE {run.total_paye}"
        )
        return run

    async def _delete_entries(self, run_id: uuid.UUID) -> None:
        entry_ids = select(PayrollEntry.id).where(PayrollEntry.payroll_run_id == run_id)
        await self.db.execute(
            delete(PayrollAddition)
            .where(PayrollAddition.payroll_entry_id.in_(entry_ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(PayrollEntry)
            .where(PayrollEntry.payroll_run_id == run_id)
            .execution_options(synchronize_session=False)
        )
        # Deleted rows must not linger in the identity map
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, (PayrollEntry, PayrollAddition)) and obj in self.db:
                self.db.expunge(obj)

    def _apply_totals(self, run: PayrollRun, entries: List[PayrollEntry]) -> None:
        totals = run_totals(entries)
        for column, value in totals.items():
            setattr(run, column, value)
        run.total_employees = len(entries)

    # ===========================================
    # IRREGULAR PAYMENTS
    # ===========================================

    async def add_addition(
        self,
        run_id: uuid.UUID,
        entry_id: uuid.UUID,
        category: Union[AdditionCategory, str],
        amount: Any,
        description: Optional[str] = None,
    ) -> PayrollRun:
        """
        Record an irregular payment on a draft entry and recalculate the run.

        Raises:
            StateConflictException: the run is not a draft
            ValidationException: amount is not positive
        """
        run = await self.get_run(run_id)
        ensure_editable(run.status, "add payments to")
        value = validate_amount(amount)
        category = AdditionCategory(category)

        entry = await self.db.get(PayrollEntry, entry_id)
        if entry is None or entry.payroll_run_id != run.id:
            raise NotFoundException("PayrollEntry", entry_id)

        try:
            max_sequence = (await self.db.execute(
                select(func.max(PayrollAddition.sequence)).where(PayrollAddition.payroll_entry_id == entry.id)
            )).scalar()
            self.db.add(PayrollAddition(
                payroll_entry_id=entry.id,
                category=category,
                amount=value,
                description=description,
                sequence=(max_sequence or 0) + 1,
            ))
            await self.db.flush()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Added {category.value} of {value} to entry {entry.id} in run {run.id}")
        return await self.recalculate_run(run.practice_id, run.month, run.year)

    async def remove_addition(self, addition_id: uuid.UUID) -> PayrollRun:
        """Remove an irregular payment from a draft run and recalculate it."""
        addition = await self.db.get(PayrollAddition, addition_id)
        if addition is None:
            raise NotFoundException("PayrollAddition", addition_id)
        entry = await self.db.get(PayrollEntry, addition.payroll_entry_id)
        run = await self.get_run(entry.payroll_run_id)
        ensure_editable(run.status, "remove payments from")

        try:
            await self.db.execute(
                delete(PayrollAddition)
                .where(PayrollAddition.id == addition_id)
                .execution_options(synchronize_session=False)
            )
            if addition in self.db:
                self.db.expunge(addition)
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Removed addition {addition_id} from run {run.id}")
        return await self.recalculate_run(run.practice_id, run.month, run.year)

    # ===========================================
    # VALIDATION AND STATUS
    # ===========================================

    async def validate_run(self, run_id: uuid.UUID) -> RunValidation:
        """
        Check a run before it is processed.

        Errors block processing (no entries, missing tax numbers); warnings
        do not (missing date of birth, retirement above the deductible cap,
        negative net pay, garnishee share).
        """
        validation = RunValidation()
        entries = await self.list_entries(run_id)
        if not entries:
            validation.errors.append("Payroll run has no entries")

        for entry in entries:
            employee = entry.employee
            label = f"{employee.full_name} ({employee.employee_number})"
            if not employee.tax_number:
                validation.errors.append(f"{label}: tax number missing")
            if entry.net_pay < ZERO:
                validation.warnings.append(f"{label}: negative net pay {entry.net_pay}")
            for warning in entry.warnings or []:
                validation.warnings.append(f"{label}: {warning}")
        return validation

    async def transition_run(self, run_id: uuid.UUID, target_status: Union[PayrollStatus, str]) -> PayrollRun:
        """
        Move a run to its next status.

        PAID also applies the run to the YTD ledger; the status change and
        the ledger update commit together or not at all.

        Raises:
            StateConflictException: illegal transition, or the status
                changed under us
            ValidationException: the run failed validation (PROCESSED)
        """
        run = await self.get_run(run_id)
        current = run.status
        target = ensure_transition(current, target_status)

        try:
            entries = await self.list_entries(run.id)
            if target == PayrollStatus.PROCESSED:
                validation = await self.validate_run(run.id)
                if not validation.is_valid:
                    raise ValidationException(
                        "Payroll run failed validation",
                        code=ErrorCode.PAYROLL_VALIDATION_FAILED,
                        details={"errors": validation.errors, "warnings": validation.warnings},
                    )

            now = datetime.now(timezone.utc)
            values: Dict[str, Any] = {"status": target}
            if target == PayrollStatus.PROCESSED:
                values["processed_at"] = now
            elif target == PayrollStatus.PAID:
                values["paid_at"] = now

            result = await self.db.execute(
                update(PayrollRun)
                .where(PayrollRun.id == run.id, PayrollRun.status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StateConflictException(
                    f"Payroll run {run.id} is no longer {current.value}",
                    current_status=current.value,
                    target_status=target.value,
                )

            if target == PayrollStatus.PAID:
                await self.ytd.apply_run(run, entries)

            self.audit.record_status_change(
                payroll_run_id=run.id,
                tax_year=run.tax_year,
                from_status=current.value,
                to_status=target.value,
                totals={column: str(getattr(run, column)) for column in RUN_TOTAL_FIELDS},
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(run)
        logger.info(f"Payroll run {run.id} moved {current.value} -> {target.value}")
        return run

    async def mark_declaration_submitted(self, run_id: uuid.UUID) -> PayrollRun:
        """Record that the monthly employer declaration was filed."""
        run = await self.get_run(run_id)
        if run.status == PayrollStatus.DRAFT:
            raise StateConflictException(
                "Cannot submit the declaration for a draft payroll run",
                current_status=run.status.value,
            )
        run.declaration_submitted_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(run)
        return run

    # ===========================================
    # PAYSLIPS AND YEAR-TO-DATE
    # ===========================================

    async def get_payslip(self, entry_id: uuid.UUID) -> Payslip:
        """Payslip for one entry, with the employee's ledger YTD for the tax year."""
        result = await self.db.execute(
            select(PayrollEntry)
            .options(
                selectinload(PayrollEntry.additions),
                selectinload(PayrollEntry.employee),
                selectinload(PayrollEntry.payroll_run),
            )
            .where(PayrollEntry.id == entry_id)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundException("PayrollEntry", entry_id)
        run = entry.payroll_run
        practice = await self._get_practice(run.practice_id)
        ytd = await self.ytd.get_ytd(entry.employee_id, run.tax_year)
        return build_payslip(entry, run, practice, ytd)

    async def get_employee_payslips(self, employee_id: uuid.UUID, tax_year: Optional[str] = None) -> List[Payslip]:
        """An employee's payslips, most recent period first."""
        employee = await self.get_employee(employee_id)
        practice = await self._get_practice(employee.practice_id)

        query = (
            select(PayrollEntry, PayrollRun)
            .join(PayrollRun, PayrollEntry.payroll_run_id == PayrollRun.id)
            .options(
                selectinload(PayrollEntry.additions),
                selectinload(PayrollEntry.employee),
            )
            .where(PayrollEntry.employee_id == employee_id)
        )
        if tax_year:
            query = query.where(PayrollRun.tax_year == checked_tax_year(tax_year))
        result = await self.db.execute(query.order_by(PayrollRun.year.desc(), PayrollRun.month.desc()))
        return [build_payslip(entry, run, practice) for entry, run in result.all()]

    async def get_employee_ytd(self, employee_id: uuid.UUID, tax_year: str) -> EmployeeYTD:
        tax_year = checked_tax_year(tax_year)
        employee = await self.get_employee(employee_id)
        ytd = await self.ytd.get_ytd(employee.id, tax_year)
        if ytd is None:
            raise NotFoundException(
                "EmployeeYTD",
                message=f"No paid payroll for employee {employee.employee_number} in {tax_year}",
            )
        return ytd

    async def get_practice_ytd(self, practice_id: uuid.UUID, tax_year: str) -> List[EmployeeYTD]:
        await self._get_practice(practice_id)
        return await self.ytd.list_for_practice(practice_id, checked_tax_year(tax_year))

    async def get_employee_audit_history(self, employee_id: uuid.UUID, tax_year: Optional[str] = None):
        await self.get_employee(employee_id)
        return await self.audit.history_for_employee(
            employee_id, checked_tax_year(tax_year) if tax_year else None,
        )

    # ===========================================
    # FRINGE BENEFITS AND GARNISHEE ORDERS
    # ===========================================

    async def add_fringe_benefit(
        self,
        employee_id: uuid.UUID,
        category: Union[FringeBenefitCategory, str],
        monthly_taxable_value: Any,
        effective_from: date,
        effective_to: Optional[date] = None,
        description: Optional[str] = None,
    ) -> FringeBenefit:
        value = validate_amount(monthly_taxable_value, field="monthly_taxable_value")
        validate_date_range(effective_from, effective_to)
        await self.get_employee(employee_id)

        benefit = FringeBenefit(
            employee_id=employee_id,
            category=FringeBenefitCategory(category),
            monthly_taxable_value=value,
            effective_from=effective_from,
            effective_to=effective_to,
            description=description,
        )
        self.db.add(benefit)
        await self.db.commit()
        await self.db.refresh(benefit)
        return benefit

    async def end_fringe_benefit(self, benefit_id: uuid.UUID, effective_to: date) -> FringeBenefit:
        benefit = await self.db.get(FringeBenefit, benefit_id)
        if benefit is None:
            raise NotFoundException("FringeBenefit", benefit_id)
        validate_date_range(benefit.effective_from, effective_to)
        benefit.effective_to = effective_to
        await self.db.commit()
        await self.db.refresh(benefit)
        return benefit

    async def add_garnishee(self, employee_id: uuid.UUID, reference: str, amount: Any) -> GarnisheeDeduction:
        value = validate_amount(amount)
        if not reference or not reference.strip():
            raise ValidationException("Garnishee reference is required", field="reference")
        await self.get_employee(employee_id)

        order = GarnisheeDeduction(employee_id=employee_id, reference=reference.strip(), amount=value)
        self.db.add(order)
        await self.db.commit()
        await self.db.refresh(order)
        return order

    async def deactivate_garnishee(self, garnishee_id: uuid.UUID) -> GarnisheeDeduction:
        order = await self.db.get(GarnisheeDeduction, garnishee_id)
        if order is None:
            raise NotFoundException("GarnisheeDeduction", garnishee_id)
        order.is_active = False
        await self.db.commit()
        await self.db.refresh(order)
        return order
