"""
Naira Payroll Engine - Payroll Reports

Read-only reports derived from computed payroll items:
- Pension schedule grouped by PFA (for PenCom remittance)
- Bank payment schedule (approved/paid runs only)
- Statutory remittance summary with due dates
- Per-employee payslip history and the annual P9A tax card

Nothing here is sent anywhere; downstream processes act on the output.
"""

import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from naira_payroll.models.payroll import FINALIZED_STATUSES, Employee, PayrollItem, PayrollItemStatus
from naira_payroll.services.payroll_repository import PayrollRepository
from naira_payroll.utils.error_handling import (
    BusinessRuleException,
    EmployeeNotFoundError,
    ErrorCode,
    RunNotFoundError,
)
from naira_payroll.utils.money import total

UNASSIGNED_PFA = "unassigned"

# Day of the month after the period on which each remittance falls due
REMITTANCE_DUE_DAYS = {
    "paye": 10,
    "pension": 7,
    "nhf": 10,
}


def _month_after(period_end: date, day: int) -> date:
    if period_end.month == 12:
        return date(period_end.year + 1, 1, day)
    return date(period_end.year, period_end.month + 1, day)


class PayrollReportService:
    """Schedules and summaries built from computed payroll items."""

    def __init__(self, repository: PayrollRepository):
        self.repository = repository

    async def _load(self, tenant_id: uuid.UUID, run_id: uuid.UUID):
        run = await self.repository.get_run(tenant_id, run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        items = [
            item for item in await self.repository.list_items(run.id)
            if item.status == PayrollItemStatus.COMPUTED
        ]
        return run, items

    async def pension_schedule(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Dict[str, Any]:
        """Employee and employer pension contributions grouped by PFA."""
        run, items = await self._load(tenant_id, run_id)

        by_pfa: Dict[str, List[PayrollItem]] = defaultdict(list)
        for item in items:
            if item.pension_employee > 0 or item.pension_employer > 0:
                by_pfa[item.pfa or UNASSIGNED_PFA].append(item)

        groups = []
        for pfa in sorted(by_pfa):
            members = by_pfa[pfa]
            employee_total = total(i.pension_employee for i in members)
            employer_total = total(i.pension_employer for i in members)
            groups.append({
                "pfa": pfa,
                "employee_count": len(members),
                "total_employee_contribution": employee_total,
                "total_employer_contribution": employer_total,
                "total_contribution": employee_total + employer_total,
                "entries": [
                    {
                        "employee_id": i.employee_id,
                        "staff_number": i.staff_number,
                        "employee_name": i.employee_name,
                        "pension_pin": i.pension_pin,
                        "employee_contribution": i.pension_employee,
                        "employer_contribution": i.pension_employer,
                        "total_contribution": i.pension_employee + i.pension_employer,
                    }
                    for i in members
                ],
            })

        return {
            "run_id": run.id,
            "period_start": run.period_start,
            "period_end": run.period_end,
            "total_employee_contribution": total(g["total_employee_contribution"] for g in groups),
            "total_employer_contribution": total(g["total_employer_contribution"] for g in groups),
            "groups": groups,
        }

    async def bank_schedule(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Dict[str, Any]:
        """Net salary payment lines, from the bank details snapshotted on each item."""
        run, items = await self._load(tenant_id, run_id)
        if run.status not in FINALIZED_STATUSES:
            raise BusinessRuleException(
                "Bank schedule is only available for approved or paid runs",
                rule="bank_schedule_requires_approval",
                code=ErrorCode.APPROVAL_REQUIRED,
                details={"run_id": str(run.id), "status": run.status.value},
            )

        lines = []
        missing = []
        for item in items:
            if item.net_pay <= 0:
                continue
            if not item.account_number:
                missing.append({"employee_id": item.employee_id, "staff_number": item.staff_number})
                continue
            lines.append({
                "employee_id": item.employee_id,
                "staff_number": item.staff_number,
                "employee_name": item.employee_name,
                "bank_name": item.bank_name or "N/A",
                "account_number": item.account_number,
                "account_name": item.account_name or item.employee_name,
                "amount": item.net_pay,
                "narration": f"Salary - {run.name}",
            })

        return {
            "run_id": run.id,
            "run_name": run.name,
            "total_amount": total(line["amount"] for line in lines),
            "total_employees": len(lines),
            "items": lines,
            "missing_bank_details": missing,
        }

    async def statutory_summary(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Dict[str, Any]:
        """Amounts due to each statutory body for the run and when they fall due."""
        run, items = await self._load(tenant_id, run_id)

        amounts: Dict[str, Decimal] = {
            "paye": total(i.paye_tax for i in items),
            "pension": total(i.pension_employee + i.pension_employer for i in items),
            "nhf": total(i.nhf for i in items),
        }
        remittances = [
            {
                "remittance_type": kind,
                "amount_due": amounts[kind],
                "due_date": _month_after(run.period_end, day),
            }
            for kind, day in REMITTANCE_DUE_DAYS.items()
        ]
        return {
            "run_id": run.id,
            "period_start": run.period_start,
            "period_end": run.period_end,
            "total_due": total(amounts.values()),
            "remittances": remittances,
        }

    # ===========================================
    # EMPLOYEE REPORTS
    # ===========================================

    async def _require_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Employee:
        employee = await self.repository.get_employee(tenant_id, employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return employee

    async def employee_history(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Payslips from approved and paid runs, oldest first."""
        await self._require_employee(tenant_id, employee_id)
        period_from = date(year, 1, 1) if year else None
        period_to = date(year, 12, 31) if year else None
        payslips = await self.repository.list_employee_payslips(tenant_id, employee_id, period_from, period_to)

        entries = [
            {
                "run_id": run.id,
                "run_name": run.name,
                "run_status": run.status,
                "period_start": run.period_start,
                "period_end": run.period_end,
                "gross_pay": item.gross_pay,
                "paye_tax": item.paye_tax,
                "pension_employee": item.pension_employee,
                "nhf": item.nhf,
                "other_deductions_total": item.other_deductions_total,
                "total_deductions": item.total_deductions,
                "net_pay": item.net_pay,
            }
            for run, item in payslips
        ]
        return {
            "employee_id": employee_id,
            "year": year,
            "total_gross": total(e["gross_pay"] for e in entries),
            "total_paye": total(e["paye_tax"] for e in entries),
            "total_net": total(e["net_pay"] for e in entries),
            "payslips": entries,
        }

    async def p9a(self, tenant_id: uuid.UUID, employee_id: uuid.UUID, year: int) -> Dict[str, Any]:
        """
        Annual P9A tax deduction card for one employee.

        A payslip counts towards the month its run period ends in. Name
        and TIN are taken from the latest payslip of the year, falling back
        to the employee record when there is none.
        """
        employee = await self._require_employee(tenant_id, employee_id)
        payslips = await self.repository.list_employee_payslips(
            tenant_id, employee_id, date(year, 1, 1), date(year, 12, 31),
        )

        by_month: Dict[int, List[PayrollItem]] = defaultdict(list)
        for run, item in payslips:
            by_month[run.period_end.month].append(item)

        months = [
            {
                "month": month,
                "gross": total(i.gross_pay for i in by_month[month]),
                "tax_deducted": total(i.paye_tax for i in by_month[month]),
                "pension": total(i.pension_employee for i in by_month[month]),
            }
            for month in range(1, 13)
        ]
        latest = payslips[-1][1] if payslips else None

        return {
            "year": year,
            "employee_id": employee_id,
            "employee_name": latest.employee_name if latest else employee.full_name,
            "staff_number": latest.staff_number if latest else employee.staff_number,
            "tin": latest.tin if latest else employee.tin,
            "months": months,
            "annual_gross": total(m["gross"] for m in months),
            "annual_tax_deducted": total(m["tax_deducted"] for m in months),
            "annual_pension": total(m["pension"] for m in months),
        }
