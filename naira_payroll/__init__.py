"""
Naira Payroll Engine

Nigerian statutory payroll computation: PAYE, pension and NHF deductions,
payroll runs and their approval lifecycle.
"""

__version__ = "1.0.0"
