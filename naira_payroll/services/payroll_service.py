"""
Naira Payroll Engine - Payroll Run Orchestrator

Drives a payroll run through its lifecycle:

    draft -> processing -> pending_approval -> approved -> paid
    draft | processing -> cancelled

Processing resolves each payable employee's compensation, computes the
payslip, upserts one item per employee and re-derives the run totals
from the full item set. Employees that fail are recorded as failed items
and keep the run in 'processing' until they are fixed and re-run, or
acknowledged and excluded.

Every state write bumps ``PayrollRun.version``; a write based on a stale
read is rejected with ConflictError.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from naira_payroll.config import settings
from naira_payroll.models.payroll import (
    Employee,
    PayrollItem,
    PayrollItemStatus,
    PayrollRun,
    PayrollRunStatus,
)
from naira_payroll.services.payroll_repository import PayrollRepository
from naira_payroll.services.salary_resolver import ResolutionContext, SalaryResolver
from naira_payroll.services.tax_bands import TaxBandSet, TaxBandTable, get_tax_band_table
from naira_payroll.services.tax_engine import PayslipComputation, TaxEngine
from naira_payroll.utils.error_handling import (
    AppException,
    BusinessRuleException,
    ErrorCode,
    InvalidDateRangeException,
    InvalidTransitionError,
    NotFoundException,
    OverlappingPeriodError,
    PartialComputationFailure,
    RunNotFoundError,
)
from naira_payroll.utils.money import ZERO, amounts_to_json, total

logger = logging.getLogger(__name__)


# ===========================================
# STATE MACHINE
# ===========================================

TRANSITIONS: Dict[PayrollRunStatus, frozenset] = {
    PayrollRunStatus.DRAFT: frozenset({PayrollRunStatus.PROCESSING, PayrollRunStatus.CANCELLED}),
    PayrollRunStatus.PROCESSING: frozenset({PayrollRunStatus.PENDING_APPROVAL, PayrollRunStatus.CANCELLED}),
    PayrollRunStatus.PENDING_APPROVAL: frozenset({PayrollRunStatus.APPROVED}),
    PayrollRunStatus.APPROVED: frozenset({PayrollRunStatus.PAID}),
    PayrollRunStatus.PAID: frozenset(),
    PayrollRunStatus.CANCELLED: frozenset(),
}

PROCESSABLE_STATUSES = (PayrollRunStatus.DRAFT, PayrollRunStatus.PROCESSING)

ITEM_AMOUNT_FIELDS = (
    "basic_salary",
    "housing_allowance",
    "transport_allowance",
    "meal_allowance",
    "utility_allowance",
    "gross_pay",
    "paye_tax",
    "pension_employee",
    "nhf",
    "other_deductions_total",
    "total_deductions",
    "net_pay",
    "pension_employer",
    "consolidated_relief",
    "taxable_income",
    "annual_tax",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EmployeeOutcome:
    """What one worker produced for one employee."""
    employee: Employee
    computation: Optional[PayslipComputation] = None
    component: Optional[str] = None
    reason: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.computation is None


def aggregate_totals(run: PayrollRun, items: Sequence[PayrollItem]) -> None:
    """Set run totals to the exact sum over its computed items."""
    computed = [i for i in items if i.status == PayrollItemStatus.COMPUTED]
    run.total_gross = total(i.gross_pay for i in computed)
    run.total_paye = total(i.paye_tax for i in computed)
    run.total_pension_employee = total(i.pension_employee for i in computed)
    run.total_nhf = total(i.nhf for i in computed)
    run.total_other_deductions = total(i.other_deductions_total for i in computed)
    run.total_deductions = total(i.total_deductions for i in computed)
    run.total_net = total(i.net_pay for i in computed)
    run.total_pension_employer = total(i.pension_employer for i in computed)
    run.total_employer_contributions = total(i.employer_contributions for i in computed)
    run.employee_count = len(computed)
    run.failed_count = sum(1 for i in items if i.status == PayrollItemStatus.FAILED)


class PayrollRunOrchestrator:
    """
    Payroll run lifecycle service.

    Holds no mutable state between calls; each call reads the run, applies
    one transition and writes it back through the repository.
    """

    def __init__(
        self,
        repository: PayrollRepository,
        tax_bands: Optional[TaxBandTable] = None,
        engine: Optional[TaxEngine] = None,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.repository = repository
        self.tax_bands = tax_bands or get_tax_band_table()
        self.engine = engine or TaxEngine()
        self.resolver = SalaryResolver(repository)
        self.batch_size = batch_size or settings.payroll_batch_size
        self.max_concurrency = max_concurrency or settings.payroll_max_concurrency

    # ===========================================
    # RUN CREATION & QUERIES
    # ===========================================

    async def create_run(
        self,
        tenant_id: uuid.UUID,
        period_start: date,
        period_end: date,
        name: Optional[str] = None,
        notes: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """
        Create a draft run for the period.

        Raises:
            InvalidDateRangeException: period_end before period_start
            OverlappingPeriodError: a non-cancelled run already covers part of the period
        """
        if period_end < period_start:
            raise InvalidDateRangeException(str(period_start), str(period_end))

        overlapping = await self.repository.find_overlapping_runs(tenant_id, period_start, period_end)
        if overlapping:
            raise OverlappingPeriodError(period_start, period_end, [r.id for r in overlapping])

        run = PayrollRun(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            name=name or f"{period_start.strftime('%B %Y')} Payroll",
            period_start=period_start,
            period_end=period_end,
            status=PayrollRunStatus.DRAFT,
            version=1,
            notes=notes,
            created_by_id=actor_id,
        )
        run.reset_totals()
        await self.repository.add_run(run)

        logger.info(f"Created payroll run {run.id} for tenant {tenant_id} ({period_start} to {period_end})")
        return run

    async def get_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Tuple[PayrollRun, List[PayrollItem]]:
        run = await self._get_run(tenant_id, run_id)
        items = await self.repository.list_items(run.id)
        return run, items

    async def list_runs(
        self,
        tenant_id: uuid.UUID,
        status: Optional[PayrollRunStatus] = None,
    ) -> List[PayrollRun]:
        return await self.repository.list_runs(tenant_id, status)

    async def delete_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> None:
        """Delete a run. Only drafts can be deleted."""
        run = await self._get_run(tenant_id, run_id)
        if run.status != PayrollRunStatus.DRAFT:
            raise InvalidTransitionError(
                run.id, run.status.value, "deleted", reason="only draft runs can be deleted",
            )
        await self.repository.delete_run(run)
        logger.info(f"Deleted draft payroll run {run.id}")

    # ===========================================
    # PROCESSING
    # ===========================================

    async def process(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """
        Compute (or recompute) every payable employee's item.

        Safe to call repeatedly: items are upserted per employee and the
        totals are rebuilt from the items each time.

        Raises:
            InvalidTransitionError: run is not draft/processing
            ConfigurationError: no tax bands cover the period
            BusinessRuleException: no payable employees for the period
            PartialComputationFailure: after saving, if any employee failed
        """
        run = await self._get_run(tenant_id, run_id)
        if run.status not in PROCESSABLE_STATUSES:
            raise InvalidTransitionError(run.id, run.status.value, PayrollRunStatus.PROCESSING.value)

        # Structural checks before any write
        band_set = self.tax_bands.bands_for(tenant_id, run.period_end)
        employees = await self.repository.list_payable_employees(tenant_id, run.period_start, run.period_end)
        if not employees:
            raise BusinessRuleException(
                f"No payable employees for {run.period_start} to {run.period_end}",
                rule="run_has_employees",
                code=ErrorCode.NO_ELIGIBLE_EMPLOYEES,
                details={"run_id": str(run.id)},
            )

        existing = {item.employee_id: item for item in await self.repository.list_items(run.id)}
        to_compute = [
            e for e in employees
            if not (e.id in existing and existing[e.id].status == PayrollItemStatus.EXCLUDED)
        ]
        context = await self.resolver.prefetch(tenant_id, [e.id for e in to_compute])

        if run.status == PayrollRunStatus.DRAFT:
            self._transition(run, PayrollRunStatus.PROCESSING)
            run.processed_by_id = actor_id
            run.processed_at = _utcnow()
            await self._save(run)

        outcomes = await self._compute_all(to_compute, context, band_set, run.period_end)

        # Single writer: fold worker results into items sequentially
        now = _utcnow()
        upserts = []
        for outcome in outcomes:
            item = existing.get(outcome.employee.id)
            if item is None:
                item = PayrollItem(id=uuid.uuid4(), payroll_run_id=run.id, employee_id=outcome.employee.id)
            self._fill_item(item, outcome, now)
            upserts.append(item)

        payable_ids = {e.id for e in employees}
        removed = [item for employee_id, item in existing.items() if employee_id not in payable_ids]
        excluded = [
            item for employee_id, item in existing.items()
            if employee_id in payable_ids and item.status == PayrollItemStatus.EXCLUDED
        ]
        aggregate_totals(run, upserts + excluded)

        failures = [self._failure_detail(o) for o in outcomes if o.failed]
        if not failures:
            self._transition(run, PayrollRunStatus.PENDING_APPROVAL)
        run.processed_by_id = actor_id or run.processed_by_id
        run.processed_at = now
        await self._save(run, upserts, removed)

        logger.info(
            f"Processed payroll run {run.id}: {run.employee_count} computed, "
            f"{len(failures)} failed, {len(excluded)} excluded, net {run.total_net}"
        )
        if failures:
            raise PartialComputationFailure(run.id, failures, run.status.value, self._totals_detail(run))
        return run

    async def _compute_all(
        self,
        employees: Sequence[Employee],
        context: ResolutionContext,
        band_set: TaxBandSet,
        as_of: date,
    ) -> List[EmployeeOutcome]:
        """Compute employees in batches on worker threads; order of results follows ``employees``."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(employee: Employee) -> EmployeeOutcome:
            async with semaphore:
                return await asyncio.to_thread(self._compute_employee, employee, context, band_set, as_of)

        outcomes: List[EmployeeOutcome] = []
        for start in range(0, len(employees), self.batch_size):
            batch = employees[start:start + self.batch_size]
            outcomes.extend(await asyncio.gather(*(run_one(e) for e in batch)))
        return outcomes

    def _compute_employee(
        self,
        employee: Employee,
        context: ResolutionContext,
        band_set: TaxBandSet,
        as_of: date,
    ) -> EmployeeOutcome:
        try:
            snapshot = context.resolve(employee.id, as_of)
        except AppException as e:
            logger.warning(f"Salary resolution failed for employee {employee.id}: {e.message}")
            return EmployeeOutcome(employee, component=e.details.get("component", "salary_assignment"), reason=e.message)
        except (ArithmeticError, ValueError) as e:
            logger.warning(f"Salary resolution failed for employee {employee.id}: {e!r}")
            return EmployeeOutcome(employee, component="salary_structure", reason=f"Unusable compensation data: {e!r}")

        try:
            computation = self.engine.compute(snapshot, band_set)
        except AppException as e:
            logger.warning(f"Tax computation failed for employee {employee.id}: {e.message}")
            return EmployeeOutcome(employee, component="tax_computation", reason=e.message)
        except ArithmeticError as e:
            logger.warning(f"Tax computation failed for employee {employee.id}: {e!r}")
            return EmployeeOutcome(employee, component="tax_computation", reason=f"Arithmetic error: {e!r}")

        if computation.net < 0:
            return EmployeeOutcome(
                employee,
                component="other_deductions",
                reason=f"Deductions of {computation.total_deductions} exceed gross pay of {computation.gross}",
            )
        return EmployeeOutcome(employee, computation=computation)

    def _fill_item(self, item: PayrollItem, outcome: EmployeeOutcome, now: datetime) -> None:
        employee = outcome.employee
        item.employee_name = employee.full_name
        item.staff_number = employee.staff_number
        item.bank_name = employee.bank_name
        item.account_number = employee.account_number
        item.account_name = employee.account_name
        item.pension_pin = employee.pension_pin
        item.pfa = employee.pfa.value if employee.pfa else None
        item.tin = employee.tin
        item.computed_at = now
        item.acknowledged_by_id = None
        item.acknowledged_at = None
        item.acknowledgement_reason = None

        if outcome.failed:
            item.status = PayrollItemStatus.FAILED
            item.failure_reason = outcome.reason
            item.failed_component = outcome.component
            for field in ITEM_AMOUNT_FIELDS:
                setattr(item, field, ZERO)
            item.other_allowances = None
            item.other_deductions = None
            item.tax_calculation = None
            return

        c = outcome.computation
        item.status = PayrollItemStatus.COMPUTED
        item.failure_reason = None
        item.failed_component = None
        item.basic_salary = c.basic
        item.housing_allowance = c.housing
        item.transport_allowance = c.transport
        item.meal_allowance = c.meal
        item.utility_allowance = c.utility
        item.other_allowances = amounts_to_json(c.other_allowances) or None
        item.gross_pay = c.gross
        item.paye_tax = c.paye
        item.pension_employee = c.pension_employee
        item.nhf = c.nhf
        item.other_deductions = amounts_to_json(c.other_deductions) or None
        item.other_deductions_total = c.other_deductions_total
        item.total_deductions = c.total_deductions
        item.net_pay = c.net
        item.pension_employer = c.pension_employer
        item.consolidated_relief = c.consolidated_relief
        item.taxable_income = c.taxable_income_annual
        item.annual_tax = c.annual_tax
        item.tax_calculation = c.tax_calculation()

    @staticmethod
    def _failure_detail(outcome: EmployeeOutcome) -> Dict[str, Optional[str]]:
        return {
            "employee_id": str(outcome.employee.id),
            "staff_number": outcome.employee.staff_number,
            "component": outcome.component,
            "reason": outcome.reason,
        }

    @staticmethod
    def _totals_detail(run: PayrollRun) -> Dict[str, str]:
        detail = {name: str(value) for name, value in run.totals().items()}
        detail["employee_count"] = str(run.employee_count)
        detail["failed_count"] = str(run.failed_count)
        return detail

    async def acknowledge_failures(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        employee_ids: Sequence[uuid.UUID],
        actor_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> PayrollRun:
        """
        Exclude failed employees from this run.

        The excluded items stay on the run for the audit trail. When no
        failed items remain the run moves to pending_approval.
        """
        run = await self._get_run(tenant_id, run_id)
        if run.status != PayrollRunStatus.PROCESSING:
            raise InvalidTransitionError(
                run.id, run.status.value, PayrollRunStatus.PENDING_APPROVAL.value,
                reason="failures can only be acknowledged while processing",
            )

        items = await self.repository.list_items(run.id)
        by_employee = {item.employee_id: item for item in items}
        now = _utcnow()
        changed = []
        for employee_id in employee_ids:
            item = by_employee.get(employee_id)
            if item is None or item.status != PayrollItemStatus.FAILED:
                raise NotFoundException(
                    "Failed payroll item",
                    employee_id,
                    message=f"Employee '{employee_id}' has no failed item on run '{run.id}'",
                    details={"run_id": str(run.id), "employee_id": str(employee_id)},
                )
            item.status = PayrollItemStatus.EXCLUDED
            item.acknowledged_by_id = actor_id
            item.acknowledged_at = now
            item.acknowledgement_reason = reason
            changed.append(item)

        aggregate_totals(run, items)
        if run.failed_count == 0:
            self._transition(run, PayrollRunStatus.PENDING_APPROVAL)
        await self._save(run, changed)

        logger.info(f"Acknowledged {len(changed)} failed employee(s) on payroll run {run.id}")
        return run

    # ===========================================
    # APPROVAL WORKFLOW
    # ===========================================

    async def approve(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """Approve a run awaiting approval; its items become immutable."""
        run = await self._get_run(tenant_id, run_id)
        self._check_transition(run, PayrollRunStatus.APPROVED)

        items = await self.repository.list_items(run.id)
        if any(item.status == PayrollItemStatus.FAILED for item in items):
            raise InvalidTransitionError(
                run.id, run.status.value, PayrollRunStatus.APPROVED.value,
                reason="run has failed items",
            )

        now = _utcnow()
        for item in items:
            item.locked_at = now
        self._transition(run, PayrollRunStatus.APPROVED)
        run.approved_by_id = actor_id
        run.approved_at = now
        await self._save(run, items)
        return run

    async def mark_paid(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        run = await self._get_run(tenant_id, run_id)
        self._transition(run, PayrollRunStatus.PAID)
        run.paid_by_id = actor_id
        run.paid_at = _utcnow()
        await self._save(run)
        return run

    async def cancel(
        self,
        tenant_id: uuid.UUID,
        run_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """Cancel a draft or processing run, discarding its items."""
        run = await self._get_run(tenant_id, run_id)
        self._check_transition(run, PayrollRunStatus.CANCELLED)

        items = await self.repository.list_items(run.id)
        run.reset_totals()
        self._transition(run, PayrollRunStatus.CANCELLED)
        run.cancelled_by_id = actor_id
        run.cancelled_at = _utcnow()
        await self._save(run, removed=items)
        return run

    # ===========================================
    # HELPERS
    # ===========================================

    async def _get_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> PayrollRun:
        run = await self.repository.get_run(tenant_id, run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    @staticmethod
    def _check_transition(run: PayrollRun, target: PayrollRunStatus) -> None:
        if target not in TRANSITIONS[run.status]:
            raise InvalidTransitionError(run.id, run.status.value, target.value)

    def _transition(self, run: PayrollRun, target: PayrollRunStatus) -> None:
        self._check_transition(run, target)
        logger.info(f"Payroll run {run.id}: {run.status.value} -> {target.value}")
        run.status = target

    async def _save(
        self,
        run: PayrollRun,
        items: Sequence[PayrollItem] = (),
        removed: Sequence[PayrollItem] = (),
    ) -> None:
        run.version += 1
        await self.repository.save_run(run, items, removed)
