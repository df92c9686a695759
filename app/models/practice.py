"""
Veyro Payroll - Practice Model

The practice is the employer: every employee and payroll run belongs to one.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.payroll import Employee, PayrollRun


class Practice(BaseModel):
    """Employer practice that runs payroll."""

    __tablename__ = "practices"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    trading_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    paye_reference_number: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Employer PAYE reference used on declarations",
    )
    sdl_exempt: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
        comment="Force SDL exemption regardless of payroll size",
    )

    # Relationships
    employees: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="practice",
    )
    payroll_runs: Mapped[List["PayrollRun"]] = relationship(
        "PayrollRun",
        back_populates="practice",
    )

    def __repr__(self) -> str:
        return f"<Practice(id={self.id}, name={self.name})>"
