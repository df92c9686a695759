"""
Veyro Payroll - Services Package

Business logic services. Import services from their modules, e.g.
``from app.services.payroll_service import PayrollService``.
"""
