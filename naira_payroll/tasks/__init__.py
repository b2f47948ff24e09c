"""
Naira Payroll Engine - Background Tasks Package

Celery background tasks.
"""

from naira_payroll.tasks.payroll_tasks import process_payroll_run_task

__all__ = [
    "process_payroll_run_task",
]
