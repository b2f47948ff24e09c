"""
Naira Payroll Engine - Payroll Repository

Persistence capability used by the payroll services. The services depend
only on ``PayrollRepository``; ``SqlAlchemyPayrollRepository`` is the
production implementation and tests substitute an in-memory fake.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from naira_payroll.models.payroll import (
    FINALIZED_STATUSES,
    PAYABLE_STATUSES,
    Employee,
    EmployeeSalaryAssignment,
    PayrollItem,
    PayrollItemStatus,
    PayrollRun,
    PayrollRunStatus,
    SalaryStructure,
)
from naira_payroll.utils.error_handling import ConflictError

logger = logging.getLogger(__name__)


class PayrollRepository(Protocol):
    """Storage operations the payroll core needs."""

    # Employees (read-only)
    async def list_payable_employees(
        self, tenant_id: uuid.UUID, period_start: date, period_end: date,
    ) -> List[Employee]: ...

    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Optional[Employee]: ...

    # Salary structures & assignments
    async def get_structures(
        self, tenant_id: uuid.UUID, structure_ids: Iterable[uuid.UUID],
    ) -> Dict[uuid.UUID, SalaryStructure]: ...

    async def list_assignments(
        self, tenant_id: uuid.UUID, employee_ids: Sequence[uuid.UUID],
    ) -> Dict[uuid.UUID, List[EmployeeSalaryAssignment]]: ...

    async def save_assignments(self, assignments: Sequence[EmployeeSalaryAssignment]) -> None: ...

    # Runs & items
    async def add_run(self, run: PayrollRun) -> None: ...

    async def get_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Optional[PayrollRun]: ...

    async def list_runs(
        self, tenant_id: uuid.UUID, status: Optional[PayrollRunStatus] = None,
    ) -> List[PayrollRun]: ...

    async def find_overlapping_runs(
        self, tenant_id: uuid.UUID, period_start: date, period_end: date,
    ) -> List[PayrollRun]: ...

    async def list_items(self, run_id: uuid.UUID) -> List[PayrollItem]: ...

    async def list_employee_payslips(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        period_from: Optional[date] = None,
        period_to: Optional[date] = None,
    ) -> List[Tuple[PayrollRun, PayrollItem]]:
        """
        Computed items of approved or paid runs for one employee, oldest first.

        ``period_from``/``period_to`` bound the run's period_end (inclusive).
        """
        ...

    async def save_run(
        self,
        run: PayrollRun,
        items: Sequence[PayrollItem] = (),
        removed: Sequence[PayrollItem] = (),
    ) -> None:
        """
        Persist the run together with item upserts/removals in one unit.

        Raises ConflictError, writing nothing, when the stored run version
        is no longer the one ``run`` was read at.
        """
        ...

    async def delete_run(self, run: PayrollRun) -> None: ...


class SqlAlchemyPayrollRepository:
    """PayrollRepository backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # EMPLOYEES
    # ===========================================

    async def list_payable_employees(
        self, tenant_id: uuid.UUID, period_start: date, period_end: date,
    ) -> List[Employee]:
        query = select(Employee).where(
            and_(
                Employee.tenant_id == tenant_id,
                Employee.hire_date <= period_end,
                or_(
                    Employee.termination_date >= period_start,
                    and_(
                        Employee.termination_date.is_(None),
                        Employee.employment_status.in_(list(PAYABLE_STATUSES)),
                    ),
                ),
            )
        ).order_by(Employee.staff_number)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Optional[Employee]:
        result = await self.db.execute(
            select(Employee).where(
                and_(Employee.id == employee_id, Employee.tenant_id == tenant_id)
            )
        )
        return result.scalar_one_or_none()

    # ===========================================
    # SALARY STRUCTURES & ASSIGNMENTS
    # ===========================================

    async def get_structures(
        self, tenant_id: uuid.UUID, structure_ids: Iterable[uuid.UUID],
    ) -> Dict[uuid.UUID, SalaryStructure]:
        ids = list(set(structure_ids))
        if not ids:
            return {}
        result = await self.db.execute(
            select(SalaryStructure).where(
                and_(SalaryStructure.tenant_id == tenant_id, SalaryStructure.id.in_(ids))
            )
        )
        return {s.id: s for s in result.scalars().all()}

    async def list_assignments(
        self, tenant_id: uuid.UUID, employee_ids: Sequence[uuid.UUID],
    ) -> Dict[uuid.UUID, List[EmployeeSalaryAssignment]]:
        if not employee_ids:
            return {}
        result = await self.db.execute(
            select(EmployeeSalaryAssignment).where(
                and_(
                    EmployeeSalaryAssignment.tenant_id == tenant_id,
                    EmployeeSalaryAssignment.employee_id.in_(list(employee_ids)),
                )
            ).order_by(EmployeeSalaryAssignment.effective_from)
        )
        grouped: Dict[uuid.UUID, List[EmployeeSalaryAssignment]] = defaultdict(list)
        for assignment in result.scalars().all():
            grouped[assignment.employee_id].append(assignment)
        return dict(grouped)

    async def save_assignments(self, assignments: Sequence[EmployeeSalaryAssignment]) -> None:
        self.db.add_all(list(assignments))
        await self.db.commit()
        for assignment in assignments:
            await self.db.refresh(assignment)

    # ===========================================
    # RUNS & ITEMS
    # ===========================================

    async def add_run(self, run: PayrollRun) -> None:
        self.db.add(run)
        await self.db.commit()
        await self.db.refresh(run)

    async def get_run(self, tenant_id: uuid.UUID, run_id: uuid.UUID) -> Optional[PayrollRun]:
        result = await self.db.execute(
            select(PayrollRun).where(
                and_(PayrollRun.id == run_id, PayrollRun.tenant_id == tenant_id)
            )
        )
        return result.scalar_one_or_none()

    async def list_runs(
        self, tenant_id: uuid.UUID, status: Optional[PayrollRunStatus] = None,
    ) -> List[PayrollRun]:
        query = select(PayrollRun).where(PayrollRun.tenant_id == tenant_id)
        if status:
            query = query.where(PayrollRun.status == status)
        query = query.order_by(PayrollRun.period_start.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_overlapping_runs(
        self, tenant_id: uuid.UUID, period_start: date, period_end: date,
    ) -> List[PayrollRun]:
        result = await self.db.execute(
            select(PayrollRun).where(
                and_(
                    PayrollRun.tenant_id == tenant_id,
                    PayrollRun.status != PayrollRunStatus.CANCELLED,
                    PayrollRun.period_start <= period_end,
                    PayrollRun.period_end >= period_start,
                )
            )
        )
        return list(result.scalars().all())

    async def list_items(self, run_id: uuid.UUID) -> List[PayrollItem]:
        result = await self.db.execute(
            select(PayrollItem)
            .where(PayrollItem.payroll_run_id == run_id)
            .order_by(PayrollItem.staff_number)
        )
        return list(result.scalars().all())

    async def list_employee_payslips(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        period_from: Optional[date] = None,
        period_to: Optional[date] = None,
    ) -> List[Tuple[PayrollRun, PayrollItem]]:
        query = (
            select(PayrollRun, PayrollItem)
            .join(PayrollItem, PayrollItem.payroll_run_id == PayrollRun.id)
            .where(
                and_(
                    PayrollRun.tenant_id == tenant_id,
                    PayrollRun.status.in_(list(FINALIZED_STATUSES)),
                    PayrollItem.employee_id == employee_id,
                    PayrollItem.status == PayrollItemStatus.COMPUTED,
                )
            )
        )
        if period_from:
            query = query.where(PayrollRun.period_end >= period_from)
        if period_to:
            query = query.where(PayrollRun.period_end <= period_to)
        query = query.order_by(PayrollRun.period_start)
        result = await self.db.execute(query)
        return [(run, item) for run, item in result.all()]

    async def save_run(
        self,
        run: PayrollRun,
        items: Sequence[PayrollItem] = (),
        removed: Sequence[PayrollItem] = (),
    ) -> None:
        try:
            self.db.add(run)
            for item in removed:
                await self.db.delete(item)
            self.db.add_all(list(items))
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"Stale write rejected for payroll run {run.id} (version {run.version})")
            raise ConflictError(run.id, expected_version=run.version - 1) from e
        # updated_at is set by the database on UPDATE and expires on commit
        await self.db.refresh(run)

    async def delete_run(self, run: PayrollRun) -> None:
        try:
            await self.db.delete(run)
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise ConflictError(run.id) from e
