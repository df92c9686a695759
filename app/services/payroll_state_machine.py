"""
Veyro Payroll - Payroll Run State Machine

    DRAFT -> PROCESSED -> PAID

DRAFT runs may be recalculated freely. PROCESSED runs are locked against
recalculation. PAID is terminal. Every transition and every mutation of a
run goes through the checks below.
"""

from typing import Dict, FrozenSet, Union

from app.models.payroll import PayrollStatus
from app.utils.error_handling import ErrorCode, StateConflictException

ALLOWED_TRANSITIONS: Dict[PayrollStatus, FrozenSet[PayrollStatus]] = {
    PayrollStatus.DRAFT: frozenset({PayrollStatus.PROCESSED}),
    PayrollStatus.PROCESSED: frozenset({PayrollStatus.PAID}),
    PayrollStatus.PAID: frozenset(),
}


def _status(value: Union[PayrollStatus, str]) -> PayrollStatus:
    return value if isinstance(value, PayrollStatus) else PayrollStatus(value)


def ensure_transition(current: Union[PayrollStatus, str], target: Union[PayrollStatus, str]) -> PayrollStatus:
    """
    Validate a status transition.

    Returns:
        The target status

    Raises:
        StateConflictException: for any transition not in ALLOWED_TRANSITIONS
    """
    current_status, target_status = _status(current), _status(target)
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise StateConflictException(
            f"Cannot move payroll run from {current_status.value} to {target_status.value}",
            current_status=current_status.value,
            target_status=target_status.value,
            code=ErrorCode.ILLEGAL_TRANSITION,
        )
    return target_status


def ensure_editable(current: Union[PayrollStatus, str], action: str = "modify") -> None:
    """Entries, additions and totals can only change while the run is a draft."""
    current_status = _status(current)
    if current_status != PayrollStatus.DRAFT:
        raise StateConflictException(
            f"Cannot {action} a {current_status.value} payroll run",
            current_status=current_status.value,
            code=ErrorCode.RUN_LOCKED,
        )
