"""
Naira Payroll Engine - Services Package

Business logic services.
"""

from naira_payroll.services.payroll_reports import PayrollReportService
from naira_payroll.services.payroll_repository import PayrollRepository, SqlAlchemyPayrollRepository
from naira_payroll.services.payroll_service import PayrollRunOrchestrator
from naira_payroll.services.salary_resolver import SalaryResolver
from naira_payroll.services.tax_bands import TaxBandTable, get_tax_band_table
from naira_payroll.services.tax_engine import CompensationSnapshot, PayslipComputation, TaxEngine

__all__ = [
    "CompensationSnapshot",
    "PayrollReportService",
    "PayrollRepository",
    "PayrollRunOrchestrator",
    "PayslipComputation",
    "SalaryResolver",
    "SqlAlchemyPayrollRepository",
    "TaxBandTable",
    "TaxEngine",
    "get_tax_band_table",
]
