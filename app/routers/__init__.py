"""
Veyro Payroll - Routers Package

FastAPI route handlers.

Routers:
- payroll: Payroll runs, irregular payments, fringe benefits, garnishee
  orders, audit trail and statutory exports
"""

from app.routers import payroll

__all__ = ["payroll"]
