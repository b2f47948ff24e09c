"""
Naira Payroll Engine - SQLAlchemy Models
"""

from naira_payroll.models.base import BaseModel, TimestampMixin, TenantMixin
from naira_payroll.models.payroll import (
    AllowanceCode,
    DeductionCode,
    Employee,
    EmployeeSalaryAssignment,
    EmploymentStatus,
    PayrollItem,
    PayrollItemStatus,
    PayrollRun,
    PayrollRunStatus,
    PensionFundAdministrator,
    SalaryStructure,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "TenantMixin",
    "AllowanceCode",
    "DeductionCode",
    "Employee",
    "EmployeeSalaryAssignment",
    "EmploymentStatus",
    "PayrollItem",
    "PayrollItemStatus",
    "PayrollRun",
    "PayrollRunStatus",
    "PensionFundAdministrator",
    "SalaryStructure",
]
