"""
Naira Payroll Engine - Routers Package

FastAPI route handlers.

Routers:
- payroll: payroll runs, salary assignments, tax preview and schedules
"""

from naira_payroll.routers import payroll

__all__ = ["payroll"]
