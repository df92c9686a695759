"""
Veyro Payroll - Payroll Service Tests

Run orchestration against an in-memory database: recalculation, irregular
payments, status transitions, the YTD ledger and the audit trail.

Objects loaded before a failing call are expired by its rollback, so the
tests keep ids in locals and reload through the service.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from app.models.payroll import (
    AdditionCategory,
    PayrollAuditAction,
    PayrollRun,
    PayrollStatus,
)
from app.services.payroll_service import PayrollService
from app.utils.error_handling import (
    ErrorCode,
    InvalidAmountException,
    InvalidDateRangeException,
    MissingTaxTablesException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)


class TestRecalculation:
    """Creating and regenerating draft runs."""

    @pytest.mark.asyncio
    async def test_recalculate_creates_draft_run(self, db_session, test_practice, test_employee):
        """First recalculation creates the run with totals from its entries."""
        service = PayrollService(db_session)

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.status == PayrollStatus.DRAFT
        assert run.tax_year == "2024/2025"
        assert run.total_employees == 1
        assert run.total_gross == Decimal("30000.00")
        assert run.total_paye == Decimal("4783.08")
        assert run.total_uif_employee == Decimal("177.12")
        # Single R30,000 employee: R360,000 a year is below the SDL threshold
        assert run.sdl_exempt is True
        assert run.total_sdl == Decimal("0.00")
        assert run.total_net == Decimal("25039.80")
        assert run.calculated_at is not None

    @pytest.mark.asyncio
    async def test_recalculate_is_idempotent(self, db_session, test_practice, test_employee):
        """Recalculating unchanged inputs gives identical entries and hashes."""
        service = PayrollService(db_session)

        first = await service.recalculate_run(test_practice.id, 6, 2024)
        first_values = [(e.employee_id, e.paye, e.net_pay) for e in await service.list_entries(first.id)]
        second = await service.recalculate_run(test_practice.id, 6, 2024)
        second_values = [(e.employee_id, e.paye, e.net_pay) for e in await service.list_entries(second.id)]

        assert first.id == second.id
        assert first_values == second_values

        records = await service.audit.history_for_run(first.id, PayrollAuditAction.ENTRY_CALCULATED)
        assert len(records) == 2
        assert records[0].breakdown_hash == records[1].breakdown_hash

    @pytest.mark.asyncio
    async def test_sdl_charged_above_threshold(self, db_session, test_practice, test_employee, make_employee):
        """R50,000 monthly payroll (R600,000 a year) attracts SDL."""
        await make_employee("E002", full_name="Pieter Botha", monthly_salary=Decimal("20000.00"))
        service = PayrollService(db_session)

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.total_employees == 2
        assert run.sdl_exempt is False
        # 1% of 30,000 + 1% of 20,000
        assert run.total_sdl == Decimal("500.00")
        # UIF employer 177.12 x 2 + SDL 500
        assert run.total_employer_contributions == Decimal("854.24")

    @pytest.mark.asyncio
    async def test_practice_sdl_override(self, db_session, test_practice, test_employee, make_employee):
        await make_employee("E002", monthly_salary=Decimal("20000.00"))
        test_practice.sdl_exempt = True
        await db_session.commit()
        service = PayrollService(db_session)

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.sdl_exempt is True
        assert run.total_sdl == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_inactive_employees_excluded(self, db_session, test_practice, test_employee, make_employee):
        await make_employee("E002", is_active=False)
        service = PayrollService(db_session)

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.total_employees == 1

    @pytest.mark.asyncio
    async def test_other_deductions_in_run_totals(self, db_session, test_practice, test_employee):
        test_employee.other_deductions = Decimal("250.00")
        await db_session.commit()
        service = PayrollService(db_session)

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.total_other_deductions == Decimal("250.00")
        assert run.total_deductions == Decimal("5210.20")
        assert run.total_net == Decimal("24789.80")
        assert (await service.list_entries(run.id))[0].other_deductions == Decimal("250.00")

    @pytest.mark.asyncio
    async def test_missing_tax_tables_halts_run(self, db_session, test_practice, test_employee):
        """No tables for 2030/2031: nothing is written."""
        practice_id = test_practice.id
        service = PayrollService(db_session)

        with pytest.raises(MissingTaxTablesException):
            await service.recalculate_run(practice_id, 6, 2030)

        assert await service.get_run_for_period(practice_id, 6, 2030) is None

    @pytest.mark.asyncio
    async def test_invalid_month_rejected(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException):
            await service.recalculate_run(test_practice.id, 13, 2024)


class TestIrregularPayments:
    """Additions on draft entries."""

    @pytest.mark.asyncio
    async def test_bonus_and_garnishee(self, db_session, test_practice, test_employee):
        """Salary 30,000 + bonus 10,000 with a 500 garnishee order."""
        service = PayrollService(db_session)
        await service.add_garnishee(test_employee.id, "CASE-2024-001", Decimal("500.00"))
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]

        run = await service.add_addition(run.id, entry.id, "bonus", Decimal("10000.00"), "Mid-year bonus")

        # PAYE 4,783.08 regular + 2,600 on the bonus
        assert run.total_gross == Decimal("40000.00")
        assert run.total_paye == Decimal("7383.08")
        assert run.total_uif_employee == Decimal("177.12")
        assert run.total_garnishee == Decimal("500.00")
        assert run.total_net == Decimal("31939.80")

        entries = await service.list_entries(run.id)
        assert len(entries) == 1
        assert entries[0].paye_irregular == Decimal("2600.00")
        assert [a.category for a in entries[0].additions] == [AdditionCategory.BONUS]

    @pytest.mark.asyncio
    async def test_additions_survive_recalculation(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]
        await service.add_addition(run.id, entry.id, "bonus", Decimal("10000.00"))

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        entries = await service.list_entries(run.id)
        assert entries[0].additions_total == Decimal("10000.00")
        assert run.total_paye == Decimal("7383.08")

    @pytest.mark.asyncio
    async def test_remove_addition(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]
        await service.add_addition(run.id, entry.id, "commission", Decimal("10000.00"))
        addition_id = (await service.list_entries(run.id))[0].additions[0].id

        run = await service.remove_addition(addition_id)

        assert run.total_paye == Decimal("4783.08")
        assert (await service.list_entries(run.id))[0].additions == []

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id
        entry_id = (await service.list_entries(run_id))[0].id

        with pytest.raises(InvalidAmountException):
            await service.add_addition(run_id, entry_id, "bonus", Decimal("0"))

        entries = await service.list_entries(run_id)
        assert entries[0].additions == []

    @pytest.mark.asyncio
    async def test_sub_cent_amount_rejected(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id
        entry_id = (await service.list_entries(run_id))[0].id

        with pytest.raises(InvalidAmountException):
            await service.add_addition(run_id, entry_id, "bonus", Decimal("10000.005"))

        assert (await service.list_entries(run_id))[0].additions == []

    @pytest.mark.asyncio
    async def test_persisted_paye_parts_reconcile(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]

        run = await service.add_addition(run.id, entry.id, "bonus", Decimal("10000.01"))

        entry = (await service.list_entries(run.id))[0]
        assert entry.paye == Decimal("7383.09")
        assert entry.paye_regular == Decimal("4783.08")
        assert entry.paye_irregular == Decimal("2600.01")
        assert entry.paye_regular + entry.paye_irregular - entry.medical_credit == entry.paye
        assert run.total_paye == Decimal("7383.09")

    @pytest.mark.asyncio
    async def test_ytd_irregular_feeds_next_month(self, db_session, test_practice, test_employee):
        """A bonus paid in June raises the tax on a July bonus."""
        service = PayrollService(db_session)
        june = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(june.id))[0]
        await service.add_addition(june.id, entry.id, "bonus", Decimal("10000.00"))
        await service.transition_run(june.id, PayrollStatus.PROCESSED)
        await service.transition_run(june.id, PayrollStatus.PAID)

        july = await service.recalculate_run(test_practice.id, 7, 2024)
        entry = (await service.list_entries(july.id))[0]
        july = await service.add_addition(july.id, entry.id, "bonus", Decimal("10000.00"))

        entries = await service.list_entries(july.id)
        # tax(380,000) - tax(370,000) = 63,072 - 59,997
        assert entries[0].paye_irregular == Decimal("3075.00")


class TestStatusTransitions:
    """DRAFT -> PROCESSED -> PAID."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)

        run = await service.transition_run(run.id, "processed")
        assert run.status == PayrollStatus.PROCESSED
        assert run.processed_at is not None

        run = await service.transition_run(run.id, PayrollStatus.PAID)
        assert run.status == PayrollStatus.PAID
        assert run.paid_at is not None

        records = await service.audit.history_for_run(run.id, PayrollAuditAction.STATUS_CHANGED)
        assert [(r.breakdown["from"], r.breakdown["to"]) for r in records] == [
            ("draft", "processed"),
            ("processed", "paid"),
        ]

    @pytest.mark.asyncio
    async def test_skipping_processed_rejected(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)

        with pytest.raises(StateConflictException) as exc_info:
            await service.transition_run(run.id, PayrollStatus.PAID)

        assert exc_info.value.code == ErrorCode.ILLEGAL_TRANSITION

    @pytest.mark.asyncio
    async def test_processed_run_is_locked(self, db_session, test_practice, test_employee):
        practice_id = test_practice.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(practice_id, 6, 2024)
        run = await service.transition_run(run.id, PayrollStatus.PROCESSED)
        run_id = run.id

        with pytest.raises(StateConflictException) as exc_info:
            await service.recalculate_run(practice_id, 6, 2024)

        assert exc_info.value.code == ErrorCode.RUN_LOCKED
        run = await service.get_run(run_id)
        assert run.status == PayrollStatus.PROCESSED
        assert run.total_paye == Decimal("4783.08")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pay", [False, True])
    async def test_locked_run_rejects_new_addition(self, db_session, test_practice, test_employee, pay):
        """Totals, entries and the YTD ledger are unchanged."""
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id
        entry_id = (await service.list_entries(run_id))[0].id
        await service.transition_run(run_id, PayrollStatus.PROCESSED)
        if pay:
            await service.transition_run(run_id, PayrollStatus.PAID)

        with pytest.raises(StateConflictException) as exc_info:
            await service.add_addition(run_id, entry_id, "bonus", Decimal("10000.00"))

        assert exc_info.value.code == ErrorCode.RUN_LOCKED
        run = await service.get_run(run_id)
        assert run.total_gross == Decimal("30000.00")
        assert run.total_paye == Decimal("4783.08")
        entries = await service.list_entries(run_id)
        assert [e.id for e in entries] == [entry_id]
        assert entries[0].additions == []
        assert entries[0].additions_total == Decimal("0.00")

        ytd = await service.ytd.get_ytd(employee_id, "2024/2025")
        if pay:
            assert ytd.ytd_gross == Decimal("30000.00")
            assert ytd.ytd_irregular_payments == Decimal("0.00")
            assert ytd.applied_run_ids == [str(run_id)]
        else:
            assert ytd is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pay", [False, True])
    async def test_locked_run_rejects_addition_removal(self, db_session, test_practice, test_employee, pay):
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id
        entry = (await service.list_entries(run_id))[0]
        await service.add_addition(run_id, entry.id, "bonus", Decimal("10000.00"))
        addition_id = (await service.list_entries(run_id))[0].additions[0].id
        await service.transition_run(run_id, PayrollStatus.PROCESSED)
        if pay:
            await service.transition_run(run_id, PayrollStatus.PAID)

        with pytest.raises(StateConflictException) as exc_info:
            await service.remove_addition(addition_id)

        assert exc_info.value.code == ErrorCode.RUN_LOCKED
        run = await service.get_run(run_id)
        assert run.total_gross == Decimal("40000.00")
        assert run.total_paye == Decimal("7383.08")
        entries = await service.list_entries(run_id)
        assert [a.id for a in entries[0].additions] == [addition_id]

        ytd = await service.ytd.get_ytd(employee_id, "2024/2025")
        if pay:
            assert ytd.ytd_gross == Decimal("40000.00")
            assert ytd.ytd_paye == Decimal("7383.08")
        else:
            assert ytd is None

    @pytest.mark.asyncio
    async def test_recalculating_paid_run_leaves_ytd(self, db_session, test_practice, test_employee):
        practice_id = test_practice.id
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(practice_id, 6, 2024)
        run_id = run.id
        await service.transition_run(run_id, PayrollStatus.PROCESSED)
        await service.transition_run(run_id, PayrollStatus.PAID)

        with pytest.raises(StateConflictException) as exc_info:
            await service.recalculate_run(practice_id, 6, 2024)

        assert exc_info.value.code == ErrorCode.RUN_LOCKED
        ytd = await service.ytd.get_ytd(employee_id, "2024/2025")
        assert ytd.ytd_gross == Decimal("30000.00")
        assert ytd.ytd_paye == Decimal("4783.08")
        assert ytd.applied_run_ids == [str(run_id)]
        run = await service.get_run(run_id)
        assert run.status == PayrollStatus.PAID

    @pytest.mark.asyncio
    async def test_paid_twice_rejected(self, db_session, test_practice, test_employee):
        """The second PAID is illegal and the YTD ledger is not touched again."""
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id
        await service.transition_run(run_id, PayrollStatus.PROCESSED)
        await service.transition_run(run_id, PayrollStatus.PAID)

        with pytest.raises(StateConflictException):
            await service.transition_run(run_id, PayrollStatus.PAID)

        ytd = await service.ytd.get_ytd(employee_id, "2024/2025")
        assert ytd.ytd_gross == Decimal("30000.00")
        assert ytd.applied_run_ids == [str(run_id)]

    @pytest.mark.asyncio
    async def test_concurrent_status_change_detected(self, db_session, test_practice, test_employee):
        """Compare-and-set fails when another writer moved the run first."""
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id
        await db_session.execute(
            update(PayrollRun)
            .where(PayrollRun.id == run_id)
            .values(status=PayrollStatus.PROCESSED)
            .execution_options(synchronize_session=False)
        )
        await db_session.commit()

        # The session still holds the run as DRAFT
        with pytest.raises(StateConflictException) as exc_info:
            await service.transition_run(run_id, PayrollStatus.PROCESSED)

        assert exc_info.value.code == ErrorCode.STATE_CONFLICT

    @pytest.mark.asyncio
    async def test_missing_tax_number_blocks_processing(self, db_session, test_practice, test_employee, make_employee):
        await make_employee("E002", full_name="Sipho Dlamini", tax_number=None)
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id

        validation = await service.validate_run(run_id)
        assert validation.is_valid is False
        assert any("Sipho Dlamini" in e for e in validation.errors)

        with pytest.raises(ValidationException) as exc_info:
            await service.transition_run(run_id, PayrollStatus.PROCESSED)

        assert exc_info.value.code == ErrorCode.PAYROLL_VALIDATION_FAILED
        run = await service.get_run(run_id)
        assert run.status == PayrollStatus.DRAFT

    @pytest.mark.asyncio
    async def test_declaration_submission(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        run_id = run.id

        with pytest.raises(StateConflictException):
            await service.mark_declaration_submitted(run_id)

        await service.transition_run(run_id, PayrollStatus.PROCESSED)
        run = await service.mark_declaration_submitted(run_id)
        assert run.declaration_submitted_at is not None


class TestYTDLedger:
    """Year-to-date accumulation on PAID."""

    @pytest.mark.asyncio
    async def test_paid_run_accumulates(self, db_session, test_practice, test_employee):
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]
        await service.add_addition(run.id, entry.id, "bonus", Decimal("10000.00"))

        # Nothing accumulates before PAID
        await service.transition_run(run.id, PayrollStatus.PROCESSED)
        assert await service.ytd.get_ytd(employee_id, "2024/2025") is None

        await service.transition_run(run.id, PayrollStatus.PAID)
        ytd = await service.ytd.get_ytd(employee_id, "2024/2025")

        assert ytd.ytd_gross == Decimal("40000.00")
        assert ytd.ytd_irregular_payments == Decimal("10000.00")
        assert ytd.ytd_paye == Decimal("7383.08")
        assert ytd.ytd_uif_employee == Decimal("177.12")
        assert ytd.ytd_uif_employer == Decimal("177.12")

    @pytest.mark.asyncio
    async def test_two_months_add_up(self, db_session, test_practice, test_employee):
        employee_id = test_employee.id
        service = PayrollService(db_session)
        for month in (6, 7):
            run = await service.recalculate_run(test_practice.id, month, 2024)
            await service.transition_run(run.id, PayrollStatus.PROCESSED)
            await service.transition_run(run.id, PayrollStatus.PAID)

        ytd = await service.ytd.get_ytd(employee_id, "2024/2025")
        assert ytd.ytd_gross == Decimal("60000.00")
        assert ytd.ytd_paye == Decimal("9566.16")
        assert len(ytd.applied_run_ids) == 2

    @pytest.mark.asyncio
    async def test_ledger_refuses_second_application(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        await service.transition_run(run.id, PayrollStatus.PROCESSED)
        run = await service.transition_run(run.id, PayrollStatus.PAID)
        entries = await service.list_entries(run.id)

        with pytest.raises(StateConflictException) as exc_info:
            await service.ytd.apply_run(run, entries)

        assert exc_info.value.code == ErrorCode.ALREADY_APPLIED

    @pytest.mark.asyncio
    async def test_new_tax_year_starts_fresh(self, db_session, test_practice, test_employee):
        employee_id = test_employee.id
        service = PayrollService(db_session)
        for month, year in ((2, 2025), (3, 2025)):
            run = await service.recalculate_run(test_practice.id, month, year)
            await service.transition_run(run.id, PayrollStatus.PROCESSED)
            await service.transition_run(run.id, PayrollStatus.PAID)

        assert (await service.ytd.get_ytd(employee_id, "2024/2025")).ytd_gross == Decimal("30000.00")
        assert (await service.ytd.get_ytd(employee_id, "2025/2026")).ytd_gross == Decimal("30000.00")


    @pytest.mark.asyncio
    async def test_practice_ytd_by_employee_name(self, db_session, test_practice, test_employee, make_employee):
        practice_id = test_practice.id
        await make_employee("E002", full_name="Pieter Botha", monthly_salary=Decimal("20000.00"))
        service = PayrollService(db_session)
        run = await service.recalculate_run(practice_id, 6, 2024)
        await service.transition_run(run.id, PayrollStatus.PROCESSED)
        await service.transition_run(run.id, PayrollStatus.PAID)

        rows = await service.get_practice_ytd(practice_id, "2024-2025")

        assert [r.employee.full_name for r in rows] == ["Pieter Botha", "Thandi Nkosi"]
        assert [r.ytd_gross for r in rows] == [Decimal("20000.00"), Decimal("30000.00")]
        assert await service.get_practice_ytd(practice_id, "2025/2026") == []

    @pytest.mark.asyncio
    async def test_employee_ytd_requires_paid_run(self, db_session, test_practice, test_employee):
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        await service.transition_run(run.id, PayrollStatus.PROCESSED)

        with pytest.raises(NotFoundException):
            await service.get_employee_ytd(employee_id, "2024/2025")

        await service.transition_run(run.id, PayrollStatus.PAID)
        ytd = await service.get_employee_ytd(employee_id, "2024-2025")
        assert ytd.ytd_paye == Decimal("4783.08")

    @pytest.mark.asyncio
    async def test_bad_tax_year_rejected(self, db_session, test_employee):
        service = PayrollService(db_session)

        with pytest.raises(ValidationException):
            await service.get_employee_ytd(test_employee.id, "2024/2026")


class TestPayslips:
    """Payslip view of calculated entries."""

    @pytest.mark.asyncio
    async def test_lines_add_up(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        await service.add_garnishee(test_employee.id, "CASE-2024-001", Decimal("500.00"))
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]
        await service.add_addition(run.id, entry.id, "bonus", Decimal("10000.00"), "Mid-year bonus")
        entry = (await service.list_entries(run.id))[0]

        payslip = await service.get_payslip(entry.id)

        assert payslip.employee_name == "Thandi Nkosi"
        assert payslip.practice_name == "Test Dental Practice"
        assert (payslip.month, payslip.year, payslip.tax_year) == (6, 2024, "2024/2025")
        assert [(line.name, line.amount, line.description) for line in payslip.earnings] == [
            ("Basic Salary", Decimal("30000.00"), None),
            ("Bonus", Decimal("10000.00"), "Mid-year bonus"),
        ]
        assert sum(line.amount for line in payslip.earnings) == payslip.gross == Decimal("40000.00")
        assert [(line.name, line.amount) for line in payslip.deductions] == [
            ("PAYE", Decimal("7383.08")),
            ("UIF", Decimal("177.12")),
            ("Garnishee Orders", Decimal("500.00")),
        ]
        assert sum(line.amount for line in payslip.deductions) == payslip.total_deductions
        assert payslip.net_pay == Decimal("31939.80")
        assert [line.name for line in payslip.employer_contributions] == ["UIF - Employer"]
        assert payslip.total_employer_contributions == Decimal("177.12")
        assert payslip.ytd is None

    @pytest.mark.asyncio
    async def test_ytd_after_payment(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        await service.transition_run(run.id, PayrollStatus.PROCESSED)
        await service.transition_run(run.id, PayrollStatus.PAID)
        entry = (await service.list_entries(run.id))[0]

        payslip = await service.get_payslip(entry.id)

        assert payslip.status == PayrollStatus.PAID
        assert payslip.ytd["tax_year"] == "2024/2025"
        assert payslip.ytd["ytd_gross"] == Decimal("30000.00")
        assert payslip.ytd["ytd_paye"] == Decimal("4783.08")

    @pytest.mark.asyncio
    async def test_employee_history_most_recent_first(self, db_session, test_practice, test_employee):
        employee_id = test_employee.id
        service = PayrollService(db_session)
        for month, year in ((6, 2024), (7, 2024), (3, 2025)):
            await service.recalculate_run(test_practice.id, month, year)

        payslips = await service.get_employee_payslips(employee_id)
        assert [(p.month, p.year) for p in payslips] == [(3, 2025), (7, 2024), (6, 2024)]

        payslips = await service.get_employee_payslips(employee_id, "2024-2025")
        assert [(p.month, p.year) for p in payslips] == [(7, 2024), (6, 2024)]
        assert all(p.net_pay == Decimal("25039.80") for p in payslips)

    @pytest.mark.asyncio
    async def test_unknown_entry(self, db_session, test_employee):
        service = PayrollService(db_session)

        with pytest.raises(NotFoundException):
            await service.get_payslip(uuid4())


class TestAuditTrail:
    """Append-only calculation history."""

    @pytest.mark.asyncio
    async def test_records_verify(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)

        records = await service.audit.history_for_run(run.id)

        assert len(records) == 1
        assert records[0].employee_id == test_employee.id
        assert records[0].breakdown["paye"] is not None
        assert service.audit.verify_record(records[0]) is True

    @pytest.mark.asyncio
    async def test_history_kept_after_recalculation(self, db_session, test_practice, test_employee):
        """Old records outlive the entries they describe."""
        employee_id = test_employee.id
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        entry = (await service.list_entries(run.id))[0]
        await service.add_addition(run.id, entry.id, "bonus", Decimal("10000.00"))

        records = await service.get_employee_audit_history(employee_id, "2024/2025")

        assert len(records) == 2
        assert records[0].breakdown_hash != records[1].breakdown_hash

    @pytest.mark.asyncio
    async def test_employee_history_unknown_employee(self, db_session):
        service = PayrollService(db_session)

        with pytest.raises(NotFoundException):
            await service.get_employee_audit_history(uuid4())


    @pytest.mark.asyncio
    async def test_records_cannot_be_updated(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        record = (await service.audit.history_for_run(run.id))[0]

        record.description = "edited"
        with pytest.raises(ValueError):
            await db_session.flush()

    @pytest.mark.asyncio
    async def test_records_cannot_be_deleted(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        record = (await service.audit.history_for_run(run.id))[0]

        await db_session.delete(record)
        with pytest.raises(ValueError):
            await db_session.flush()


class TestFringeBenefitsAndGarnishees:
    """Managing benefit and garnishee inputs."""

    @pytest.mark.asyncio
    async def test_fringe_benefit_taxed_in_run(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        await service.recalculate_run(test_practice.id, 6, 2024)

        await service.add_fringe_benefit(
            test_employee.id, "company_car", Decimal("2000.00"), date(2024, 1, 1),
        )
        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.total_taxable_income == Decimal("32000.00")
        assert run.total_gross == Decimal("30000.00")
        assert run.total_paye == Decimal("5359.33")

    @pytest.mark.asyncio
    async def test_ended_benefit_drops_out(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        benefit = await service.add_fringe_benefit(
            test_employee.id, "housing", Decimal("2000.00"), date(2024, 1, 1),
        )
        await service.end_fringe_benefit(benefit.id, date(2024, 5, 31))

        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.total_taxable_income == Decimal("30000.00")

    @pytest.mark.asyncio
    async def test_fringe_benefit_date_range_validated(self, db_session, test_employee):
        service = PayrollService(db_session)

        with pytest.raises(InvalidDateRangeException):
            await service.add_fringe_benefit(
                test_employee.id, "housing", Decimal("2000.00"), date(2024, 6, 1), date(2024, 5, 1),
            )

    @pytest.mark.asyncio
    async def test_garnishee_deactivation(self, db_session, test_practice, test_employee):
        service = PayrollService(db_session)
        order = await service.add_garnishee(test_employee.id, "CASE-1", Decimal("500.00"))
        run = await service.recalculate_run(test_practice.id, 6, 2024)
        assert run.total_garnishee == Decimal("500.00")

        await service.deactivate_garnishee(order.id)
        run = await service.recalculate_run(test_practice.id, 6, 2024)

        assert run.total_garnishee == Decimal("0.00")
        assert run.total_net == Decimal("25039.80")

    @pytest.mark.asyncio
    async def test_garnishee_amount_validated(self, db_session, test_employee):
        service = PayrollService(db_session)

        with pytest.raises(InvalidAmountException):
            await service.add_garnishee(test_employee.id, "CASE-1", Decimal("-5"))
