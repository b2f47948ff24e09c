"""
Naira Payroll Engine - Payroll Report Tests

Pension, bank and statutory remittance schedules, payslip history and P9A.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from naira_payroll.models.payroll import PayrollRunStatus
from naira_payroll.services.payroll_reports import PayrollReportService
from naira_payroll.utils.error_handling import (
    BusinessRuleException,
    EmployeeNotFoundError,
    ErrorCode,
    PartialComputationFailure,
    RunNotFoundError,
)

from tests.conftest import JANUARY_END, JANUARY_START
from tests.fakes import make_assignment, make_employee


@pytest.fixture
def reports(repository) -> PayrollReportService:
    return PayrollReportService(repository)


async def processed_run(orchestrator, tenant_id, start=JANUARY_START, end=JANUARY_END):
    run = await orchestrator.create_run(tenant_id, start, end)
    return await orchestrator.process(tenant_id, run.id)


async def approved_run(orchestrator, tenant_id):
    run = await processed_run(orchestrator, tenant_id)
    return await orchestrator.approve(tenant_id, run.id)


class TestPensionSchedule:

    @pytest.mark.asyncio
    async def test_grouped_by_pfa(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        run = await processed_run(orchestrator, tenant_id)

        schedule = await reports.pension_schedule(tenant_id, run.id)

        assert [g["pfa"] for g in schedule["groups"]] == ["stanbic_ibtc_pension", "unassigned"]
        stanbic, unassigned = schedule["groups"]
        assert stanbic["employee_count"] == 2
        assert stanbic["total_employee_contribution"] == Decimal("80000.00")
        assert stanbic["total_employer_contribution"] == Decimal("100000.00")
        assert stanbic["total_contribution"] == Decimal("180000.00")
        assert unassigned["entries"][0]["staff_number"] == "E003"
        assert unassigned["entries"][0]["total_contribution"] == Decimal("27000.00")
        assert schedule["total_employee_contribution"] == run.total_pension_employee
        assert schedule["total_employer_contribution"] == run.total_pension_employer

    @pytest.mark.asyncio
    async def test_pension_exempt_employees_left_out(self, orchestrator, reports, repository, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        intern = repository.add_employee(make_employee(tenant_id, "E020", "Ifeoma", "Nwosu"))
        repository.add_assignment(make_assignment(
            tenant_id, intern.id, basic_salary=Decimal("80000.00"), pension_applicable=False,
        ))
        run = await processed_run(orchestrator, tenant_id)

        schedule = await reports.pension_schedule(tenant_id, run.id)

        staff = [e["staff_number"] for g in schedule["groups"] for e in g["entries"]]
        assert "E020" not in staff

    @pytest.mark.asyncio
    async def test_unknown_run(self, reports, tenant_id):
        with pytest.raises(RunNotFoundError):
            await reports.pension_schedule(tenant_id, uuid4())


class TestBankSchedule:

    @pytest.mark.asyncio
    async def test_requires_approval(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        run = await processed_run(orchestrator, tenant_id)

        with pytest.raises(BusinessRuleException) as exc_info:
            await reports.bank_schedule(tenant_id, run.id)
        assert exc_info.value.code == ErrorCode.APPROVAL_REQUIRED
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_approved_run(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        run = await approved_run(orchestrator, tenant_id)

        schedule = await reports.bank_schedule(tenant_id, run.id)

        assert schedule["total_employees"] == 3
        assert schedule["total_amount"] == Decimal("882579.16")
        lines = {line["staff_number"]: line for line in schedule["items"]}
        assert lines["E003"]["bank_name"] == "GTBank"
        assert lines["E003"]["account_number"] == "0123456789"
        assert lines["E002"]["amount"] == Decimal("369233.33")
        assert lines["E001"]["narration"] == "Salary - January 2026 Payroll"
        assert schedule["missing_bank_details"] == []

    @pytest.mark.asyncio
    async def test_missing_account_reported(self, orchestrator, reports, repository, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        employee = repository.add_employee(make_employee(tenant_id, "E021", account_number=None))
        repository.add_assignment(make_assignment(tenant_id, employee.id, basic_salary=Decimal("90000.00")))
        run = await approved_run(orchestrator, tenant_id)

        schedule = await reports.bank_schedule(tenant_id, run.id)

        assert schedule["total_employees"] == 3
        assert schedule["missing_bank_details"] == [{"employee_id": employee.id, "staff_number": "E021"}]

    @pytest.mark.asyncio
    async def test_uses_details_captured_at_computation(self, orchestrator, reports, repository, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        run = await approved_run(orchestrator, tenant_id)
        repository.employees[payroll_setup.employees[0].id].account_number = "9999999999"

        schedule = await reports.bank_schedule(tenant_id, run.id)

        lines = {line["staff_number"]: line for line in schedule["items"]}
        assert lines["E001"]["account_number"] == "3012345678"


class TestStatutorySummary:

    @pytest.mark.asyncio
    async def test_amounts_and_due_dates(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        run = await processed_run(orchestrator, tenant_id)

        summary = await reports.statutory_summary(tenant_id, run.id)

        due = {r["remittance_type"]: r for r in summary["remittances"]}
        assert due["paye"]["amount_due"] == Decimal("136670.84")
        assert due["paye"]["due_date"] == date(2026, 2, 10)
        assert due["pension"]["amount_due"] == Decimal("207000.00")
        assert due["pension"]["due_date"] == date(2026, 2, 7)
        assert due["nhf"]["amount_due"] == Decimal("18750.00")
        assert due["nhf"]["due_date"] == date(2026, 2, 10)
        assert summary["total_due"] == Decimal("362420.84")

    @pytest.mark.asyncio
    async def test_december_falls_due_next_year(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        run = await processed_run(orchestrator, tenant_id, date(2025, 12, 1), date(2025, 12, 31))

        summary = await reports.statutory_summary(tenant_id, run.id)

        due = {r["remittance_type"]: r["due_date"] for r in summary["remittances"]}
        assert due == {"paye": date(2026, 1, 10), "pension": date(2026, 1, 7), "nhf": date(2026, 1, 10)}


FEBRUARY = (date(2026, 2, 1), date(2026, 2, 28))
MARCH = (date(2026, 3, 1), date(2026, 3, 31))


async def approve(orchestrator, tenant_id, start, end):
    run = await processed_run(orchestrator, tenant_id, start, end)
    return await orchestrator.approve(tenant_id, run.id)


class TestEmployeeHistory:

    @pytest.mark.asyncio
    async def test_only_approved_and_paid_runs(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        january = await approved_run(orchestrator, tenant_id)
        february = await approve(orchestrator, tenant_id, *FEBRUARY)
        await orchestrator.mark_paid(tenant_id, february.id)
        await processed_run(orchestrator, tenant_id, *MARCH)

        history = await reports.employee_history(tenant_id, payroll_setup.employees[0].id)

        assert [p["run_id"] for p in history["payslips"]] == [january.id, february.id]
        assert history["payslips"][0]["run_status"] == PayrollRunStatus.APPROVED
        assert history["payslips"][1]["run_status"] == PayrollRunStatus.PAID
        assert history["payslips"][0]["net_pay"] == Decimal("389233.33")
        assert history["total_gross"] == Decimal("1000000.00")
        assert history["total_paye"] == Decimal("126533.34")
        assert history["total_net"] == Decimal("778466.66")

    @pytest.mark.asyncio
    async def test_filtered_by_year(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        await approve(orchestrator, tenant_id, date(2025, 12, 1), date(2025, 12, 31))
        january = await approved_run(orchestrator, tenant_id)

        history = await reports.employee_history(tenant_id, payroll_setup.employees[0].id, year=2026)

        assert [p["run_id"] for p in history["payslips"]] == [january.id]
        assert history["year"] == 2026

    @pytest.mark.asyncio
    async def test_excluded_employee_has_no_payslip(self, orchestrator, reports, repository, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        broken = repository.add_employee(make_employee(tenant_id, "E004", "Damilola", "Bello"))
        run = await orchestrator.create_run(tenant_id, JANUARY_START, JANUARY_END)
        with pytest.raises(PartialComputationFailure):
            await orchestrator.process(tenant_id, run.id)
        await orchestrator.acknowledge_failures(tenant_id, run.id, [broken.id])
        await orchestrator.approve(tenant_id, run.id)

        history = await reports.employee_history(tenant_id, broken.id)

        assert history["payslips"] == []
        assert history["total_net"] == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_employee(self, reports, tenant_id):
        with pytest.raises(EmployeeNotFoundError):
            await reports.employee_history(tenant_id, uuid4())


class TestP9A:

    @pytest.mark.asyncio
    async def test_monthly_breakdown(self, orchestrator, reports, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        await approved_run(orchestrator, tenant_id)
        await approve(orchestrator, tenant_id, *FEBRUARY)
        await processed_run(orchestrator, tenant_id, *MARCH)

        card = await reports.p9a(tenant_id, payroll_setup.employees[0].id, 2026)

        assert card["employee_name"] == "Adaeze Okafor"
        assert card["staff_number"] == "E001"
        assert card["tin"] == "12345678-0001"
        assert [m["month"] for m in card["months"]] == list(range(1, 13))
        assert card["months"][0] == {
            "month": 1,
            "gross": Decimal("500000.00"),
            "tax_deducted": Decimal("63266.67"),
            "pension": Decimal("40000.00"),
        }
        assert card["months"][2]["gross"] == Decimal("0")
        assert card["annual_gross"] == Decimal("1000000.00")
        assert card["annual_tax_deducted"] == Decimal("126533.34")
        assert card["annual_pension"] == Decimal("80000.00")

    @pytest.mark.asyncio
    async def test_tin_from_payslip_snapshot(self, orchestrator, reports, repository, payroll_setup):
        tenant_id = payroll_setup.tenant_id
        employee = payroll_setup.employees[0]
        await approved_run(orchestrator, tenant_id)
        repository.employees[employee.id].tin = "99999999-0001"

        card = await reports.p9a(tenant_id, employee.id, 2026)

        assert card["tin"] == "12345678-0001"

    @pytest.mark.asyncio
    async def test_year_without_payslips(self, reports, payroll_setup):
        employee = payroll_setup.employees[2]

        card = await reports.p9a(payroll_setup.tenant_id, employee.id, 2026)

        assert card["employee_name"] == "Chinedu Eze"
        assert card["annual_gross"] == Decimal("0")
        assert all(m["tax_deducted"] == Decimal("0") for m in card["months"])
