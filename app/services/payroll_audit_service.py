"""
Veyro Payroll - Payroll Audit Trail Service

Append-only log of every entry calculation and status change. Records are
never updated or deleted: a recalculation adds new records and the old
ones remain as history of what was known at the time.
"""

import hashlib
import json
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payroll import PayrollAuditAction, PayrollAuditLog


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        return super().default(obj)


def canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), cls=DecimalEncoder)


def breakdown_hash(data: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON rendering."""
    return hashlib.sha256(canonical_json(data).encode()).hexdigest()


class PayrollAuditService:
    """Writes and reads payroll audit records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _append(
        self,
        payroll_run_id: uuid.UUID,
        action: PayrollAuditAction,
        tax_year: str,
        breakdown: Dict[str, Any],
        payroll_entry_id: Optional[uuid.UUID] = None,
        employee_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
    ) -> PayrollAuditLog:
        # Round-trip through JSON so the stored document equals the hashed one
        document = json.loads(canonical_json(breakdown))
        record = PayrollAuditLog(
            id=uuid.uuid4(),
            payroll_run_id=payroll_run_id,
            payroll_entry_id=payroll_entry_id,
            employee_id=employee_id,
            action=action,
            tax_year=tax_year,
            breakdown=document,
            breakdown_hash=breakdown_hash(document),
            description=description,
            calculated_at=datetime.now(timezone.utc),
        )
        self.db.add(record)
        return record

    def record_entry_calculation(
        self,
        payroll_run_id: uuid.UUID,
        payroll_entry_id: uuid.UUID,
        employee_id: uuid.UUID,
        tax_year: str,
        breakdown: Dict[str, Any],
    ) -> PayrollAuditLog:
        """
        Append the full breakdown of one entry calculation.

        Added to the caller's session; committed with the caller's transaction.
        """
        return self._append(
            payroll_run_id=payroll_run_id,
            action=PayrollAuditAction.ENTRY_CALCULATED,
            tax_year=tax_year,
            breakdown=breakdown,
            payroll_entry_id=payroll_entry_id,
            employee_id=employee_id,
        )

    def record_status_change(
        self,
        payroll_run_id: uuid.UUID,
        tax_year: str,
        from_status: str,
        to_status: str,
        totals: Dict[str, Any],
    ) -> PayrollAuditLog:
        return self._append(
            payroll_run_id=payroll_run_id,
            action=PayrollAuditAction.STATUS_CHANGED,
            tax_year=tax_year,
            breakdown={"from": from_status, "to": to_status, "totals": totals},
            description=f"Payroll run {from_status} -> {to_status}",
        )

    async def history_for_run(
        self,
        payroll_run_id: uuid.UUID,
        action: Optional[PayrollAuditAction] = None,
    ) -> List[PayrollAuditLog]:
        """All records for a run, oldest first."""
        query = select(PayrollAuditLog).where(PayrollAuditLog.payroll_run_id == payroll_run_id)
        if action is not None:
            query = query.where(PayrollAuditLog.action == action)
        query = query.order_by(PayrollAuditLog.calculated_at, PayrollAuditLog.employee_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def history_for_employee(self, employee_id: uuid.UUID, tax_year: Optional[str] = None) -> List[PayrollAuditLog]:
        query = select(PayrollAuditLog).where(PayrollAuditLog.employee_id == employee_id)
        if tax_year:
            query = query.where(PayrollAuditLog.tax_year == tax_year)
        result = await self.db.execute(query.order_by(PayrollAuditLog.calculated_at))
        return list(result.scalars().all())

    @staticmethod
    def verify_record(record: PayrollAuditLog) -> bool:
        """True when the stored breakdown still matches its hash."""
        return breakdown_hash(record.breakdown) == record.breakdown_hash
