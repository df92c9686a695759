"""
Veyro Payroll - Payroll Router

API endpoints for payroll runs, irregular payments, fringe benefits,
garnishee orders, the audit trail and statutory exports.
"""

import io
import uuid
from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.models.payroll import PayrollAuditAction
from app.schemas.payroll import (
    EmployeeYTDResponse,
    FringeBenefitCreate,
    FringeBenefitEnd,
    FringeBenefitResponse,
    GarnisheeCreate,
    GarnisheeResponse,
    PayrollAdditionCreate,
    PayrollAuditLogResponse,
    PayrollEntryResponse,
    PayrollRunResponse,
    PayslipResponse,
    PayslipSummary,
    RunValidationResponse,
    StatusTransitionRequest,
)
from app.services.payroll_export_service import PayrollExportService
from app.services.payroll_service import PayrollService


router = APIRouter()


class RunExportKind(str, Enum):
    BANK = "bank"
    ACCOUNTANT = "accountant"
    DECLARATION = "declaration"


def _csv_response(content: bytes, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        },
    )


# ===========================================
# PAYROLL RUN ENDPOINTS
# ===========================================

@router.post(
    "/practices/{practice_id}/runs/{year}/{month}/recalculate",
    response_model=PayrollRunResponse,
    summary="Create or recalculate a payroll run",
    description="Regenerates every entry of the practice's draft run for the month from current inputs.",
)
async def recalculate_run(
    practice_id: uuid.UUID,
    year: int,
    month: int,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.recalculate_run(practice_id, month, year)


@router.get(
    "/practices/{practice_id}/runs",
    response_model=List[PayrollRunResponse],
    summary="List payroll runs",
)
async def list_runs(
    practice_id: uuid.UUID,
    tax_year: Optional[str] = Query(None, description="Tax year, e.g. 2024-2025"),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.list_runs(practice_id, tax_year.replace("-", "/") if tax_year else None)


@router.get(
    "/runs/{run_id}",
    response_model=PayrollRunResponse,
    summary="Get payroll run",
)
async def get_run(
    run_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_run(run_id)


@router.get(
    "/runs/{run_id}/entries",
    response_model=List[PayrollEntryResponse],
    summary="List payroll run entries",
)
async def list_entries(
    run_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    await service.get_run(run_id)
    return await service.list_entries(run_id)


@router.get(
    "/runs/{run_id}/validation",
    response_model=RunValidationResponse,
    summary="Validate a payroll run before processing",
)
async def validate_run(
    run_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    await service.get_run(run_id)
    validation = await service.validate_run(run_id)
    return RunValidationResponse(
        is_valid=validation.is_valid,
        errors=validation.errors,
        warnings=validation.warnings,
    )


@router.post(
    "/runs/{run_id}/transition",
    response_model=PayrollRunResponse,
    summary="Change payroll run status",
    description="DRAFT -> PROCESSED -> PAID. Marking a run paid updates the year-to-date ledger.",
)
async def transition_run(
    run_id: uuid.UUID,
    data: StatusTransitionRequest,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.transition_run(run_id, data.target_status)


@router.post(
    "/runs/{run_id}/declaration-submitted",
    response_model=PayrollRunResponse,
    summary="Record the monthly declaration as submitted",
)
async def mark_declaration_submitted(
    run_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.mark_declaration_submitted(run_id)


# ===========================================
# IRREGULAR PAYMENT ENDPOINTS
# ===========================================

@router.post(
    "/runs/{run_id}/entries/{entry_id}/additions",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an irregular payment",
    description="Records a bonus, commission or other irregular payment and recalculates the draft run.",
)
async def add_addition(
    run_id: uuid.UUID,
    entry_id: uuid.UUID,
    data: PayrollAdditionCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.add_addition(
        run_id=run_id,
        entry_id=entry_id,
        category=data.category,
        amount=data.amount,
        description=data.description,
    )


@router.delete(
    "/additions/{addition_id}",
    response_model=PayrollRunResponse,
    summary="Remove an irregular payment",
)
async def remove_addition(
    addition_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.remove_addition(addition_id)


# ===========================================
# FRINGE BENEFIT ENDPOINTS
# ===========================================

@router.post(
    "/employees/{employee_id}/fringe-benefits",
    response_model=FringeBenefitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a fringe benefit",
)
async def add_fringe_benefit(
    employee_id: uuid.UUID,
    data: FringeBenefitCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.add_fringe_benefit(employee_id=employee_id, **data.model_dump())


@router.post(
    "/fringe-benefits/{benefit_id}/end",
    response_model=FringeBenefitResponse,
    summary="End a fringe benefit",
)
async def end_fringe_benefit(
    benefit_id: uuid.UUID,
    data: FringeBenefitEnd,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.end_fringe_benefit(benefit_id, data.effective_to)


# ===========================================
# GARNISHEE ENDPOINTS
# ===========================================

@router.post(
    "/employees/{employee_id}/garnishees",
    response_model=GarnisheeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a garnishee order",
)
async def add_garnishee(
    employee_id: uuid.UUID,
    data: GarnisheeCreate,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.add_garnishee(employee_id, data.reference, data.amount)


@router.post(
    "/garnishees/{garnishee_id}/deactivate",
    response_model=GarnisheeResponse,
    summary="Deactivate a garnishee order",
)
async def deactivate_garnishee(
    garnishee_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.deactivate_garnishee(garnishee_id)


# ===========================================
# PAYSLIPS AND YEAR-TO-DATE
# ===========================================

@router.get(
    "/entries/{entry_id}/payslip",
    response_model=PayslipResponse,
    summary="Get payslip for a payroll entry",
)
async def get_payslip(
    entry_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_payslip(entry_id)


@router.get(
    "/employees/{employee_id}/payslips",
    response_model=List[PayslipSummary],
    summary="List an employee's payslips",
)
async def get_employee_payslips(
    employee_id: uuid.UUID,
    tax_year: Optional[str] = Query(None, description="Tax year, e.g. 2024-2025"),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_employee_payslips(employee_id, tax_year)


@router.get(
    "/employees/{employee_id}/ytd/{tax_year}",
    response_model=EmployeeYTDResponse,
    summary="Employee year-to-date totals",
    description="Totals of the employee's paid payroll runs in the tax year.",
)
async def get_employee_ytd(
    employee_id: uuid.UUID,
    tax_year: str,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_employee_ytd(employee_id, tax_year)


@router.get(
    "/practices/{practice_id}/ytd/{tax_year}",
    response_model=List[EmployeeYTDResponse],
    summary="Year-to-date totals of every employee in a practice",
)
async def get_practice_ytd(
    practice_id: uuid.UUID,
    tax_year: str,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_practice_ytd(practice_id, tax_year)


# ===========================================
# AUDIT TRAIL
# ===========================================

@router.get(
    "/runs/{run_id}/audit",
    response_model=List[PayrollAuditLogResponse],
    summary="Payroll run audit trail",
)
async def get_audit_trail(
    run_id: uuid.UUID,
    action: Optional[PayrollAuditAction] = Query(None),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    await service.get_run(run_id)
    return await service.audit.history_for_run(run_id, action)


@router.get(
    "/employees/{employee_id}/audit",
    response_model=List[PayrollAuditLogResponse],
    summary="Employee calculation history",
)
async def get_employee_audit_trail(
    employee_id: uuid.UUID,
    tax_year: Optional[str] = Query(None, description="Tax year, e.g. 2024-2025"),
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollService(db)
    return await service.get_employee_audit_history(employee_id, tax_year)


# ===========================================
# EXPORTS
# ===========================================

@router.get(
    "/runs/{run_id}/exports/{kind}",
    summary="Export a payroll run as CSV",
    description="bank: bulk payment file; accountant: deduction breakdown; declaration: EMP201.",
)
async def export_run(
    run_id: uuid.UUID,
    kind: RunExportKind,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollExportService(db)
    if kind == RunExportKind.BANK:
        content, filename = await service.export_bank_payments(run_id)
    elif kind == RunExportKind.ACCOUNTANT:
        content, filename = await service.export_accountant(run_id)
    else:
        content, filename = await service.export_monthly_declaration(run_id)
    return _csv_response(content, filename)


@router.get(
    "/practices/{practice_id}/exports/reconciliation/{tax_year}",
    summary="Annual employer reconciliation (EMP501) as CSV",
)
async def export_reconciliation(
    practice_id: uuid.UUID,
    tax_year: str,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollExportService(db)
    content, filename = await service.export_annual_reconciliation(practice_id, tax_year)
    return _csv_response(content, filename)


@router.get(
    "/employees/{employee_id}/exports/certificate/{tax_year}",
    summary="Employee tax certificate (IRP5) as CSV",
)
async def export_certificate(
    employee_id: uuid.UUID,
    tax_year: str,
    db: AsyncSession = Depends(get_async_session),
):
    service = PayrollExportService(db)
    content, filename = await service.export_tax_certificate(employee_id, tax_year)
    return _csv_response(content, filename)
