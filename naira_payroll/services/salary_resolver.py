"""
Naira Payroll Engine - Salary Resolver

Determines the compensation in force for an employee on a date.

Assignments form a history of ``[effective_from, effective_to)`` records
per employee. Resolution picks the single record covering the date and
layers its overrides over the referenced salary structure; a change of
salary appends a new record and closes the previous one.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from naira_payroll.models.payroll import (
    AllowanceCode,
    DeductionCode,
    EmployeeSalaryAssignment,
    SalaryStructure,
)
from naira_payroll.services.payroll_repository import PayrollRepository
from naira_payroll.services.tax_engine import CompensationSnapshot
from naira_payroll.utils.error_handling import (
    AmbiguousAssignmentError,
    EmployeeNotFoundError,
    ErrorCode,
    InvalidAmountException,
    InvalidCompensationDataError,
    SalaryAssignmentNotFoundError,
    SalaryStructureNotFoundError,
    ValidationException,
)
from naira_payroll.utils.money import (
    ZERO,
    amounts_from_json,
    amounts_to_json,
    as_decimal,
    normalize_amount_map,
)

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = (
    "basic_salary",
    "housing_allowance",
    "transport_allowance",
    "meal_allowance",
    "utility_allowance",
)
FLAG_FIELDS = ("paye_applicable", "pension_applicable", "nhf_applicable")


def select_assignment(
    employee_id: uuid.UUID,
    assignments: Sequence[EmployeeSalaryAssignment],
    as_of: date,
) -> EmployeeSalaryAssignment:
    """The one assignment covering ``as_of``; anything else is an error."""
    covering = [a for a in assignments if a.covers(as_of)]
    if not covering:
        raise SalaryAssignmentNotFoundError(employee_id, as_of)
    if len(covering) > 1:
        raise AmbiguousAssignmentError(employee_id, as_of, [a.id for a in covering])
    return covering[0]


def _stored_amounts(raw: Any, codes, field: str, component: str, record_id: uuid.UUID) -> Dict[str, Decimal]:
    try:
        return amounts_from_json(raw, codes, field)
    except ValidationException as e:
        raise InvalidCompensationDataError(component, record_id, field, e.message) from e


def build_snapshot(
    assignment: EmployeeSalaryAssignment,
    structure: Optional[SalaryStructure],
) -> CompensationSnapshot:
    """
    Apply assignment overrides component by component over the structure.

    Raises:
        InvalidCompensationDataError: an allowance or deduction map holds an
            unknown code or an unusable amount
    """

    def amount(name: str) -> Decimal:
        override = getattr(assignment, name)
        if override is not None:
            return override
        return getattr(structure, name) if structure is not None else ZERO

    def flag(name: str) -> bool:
        override = getattr(assignment, name)
        if override is not None:
            return override
        return getattr(structure, name) if structure is not None else True

    allowances = {}
    if structure is not None:
        allowances = _stored_amounts(
            structure.other_allowances, AllowanceCode, "other_allowances", "salary_structure", structure.id,
        )
    allowances.update(_stored_amounts(
        assignment.other_allowances, AllowanceCode, "other_allowances", "salary_assignment", assignment.id,
    ))
    deductions = _stored_amounts(
        assignment.other_deductions, DeductionCode, "other_deductions", "salary_assignment", assignment.id,
    )

    return CompensationSnapshot(
        basic=amount("basic_salary"),
        housing=amount("housing_allowance"),
        transport=amount("transport_allowance"),
        meal=amount("meal_allowance"),
        utility=amount("utility_allowance"),
        other_allowances=dict(sorted(allowances.items())),
        other_deductions=deductions,
        paye_applicable=flag("paye_applicable"),
        pension_applicable=flag("pension_applicable"),
        nhf_applicable=flag("nhf_applicable"),
    )


def resolve_snapshot(
    employee_id: uuid.UUID,
    assignments: Sequence[EmployeeSalaryAssignment],
    structures: Mapping[uuid.UUID, SalaryStructure],
    as_of: date,
) -> CompensationSnapshot:
    """Resolve from already-loaded records (no I/O)."""
    assignment = select_assignment(employee_id, assignments, as_of)
    structure = None
    if assignment.salary_structure_id is not None:
        structure = structures.get(assignment.salary_structure_id)
        if structure is None:
            raise SalaryStructureNotFoundError(assignment.salary_structure_id, employee_id)
    return build_snapshot(assignment, structure)


@dataclass(frozen=True)
class ResolutionContext:
    """Assignments and structures loaded up front; resolves without I/O."""
    assignments: Mapping[uuid.UUID, Sequence[EmployeeSalaryAssignment]]
    structures: Mapping[uuid.UUID, SalaryStructure]

    def resolve(self, employee_id: uuid.UUID, as_of: date) -> CompensationSnapshot:
        return resolve_snapshot(employee_id, self.assignments.get(employee_id, ()), self.structures, as_of)


class SalaryResolver:
    """Service for resolving and recording employee salary assignments."""

    def __init__(self, repository: PayrollRepository):
        self.repository = repository

    async def resolve(self, tenant_id: uuid.UUID, employee_id: uuid.UUID, as_of: date) -> CompensationSnapshot:
        """
        Compensation in force for the employee on ``as_of``.

        Raises:
            EmployeeNotFoundError: unknown employee for the tenant
            SalaryAssignmentNotFoundError: no assignment covers the date
            AmbiguousAssignmentError: several assignments cover the date
            SalaryStructureNotFoundError: assignment references a missing structure
        """
        await self._require_employee(tenant_id, employee_id)
        context = await self.prefetch(tenant_id, [employee_id])
        return context.resolve(employee_id, as_of)

    async def prefetch(self, tenant_id: uuid.UUID, employee_ids: Sequence[uuid.UUID]) -> ResolutionContext:
        """Load assignments and referenced structures for many employees at once."""
        assignments = await self.repository.list_assignments(tenant_id, list(employee_ids))
        structure_ids = {
            a.salary_structure_id
            for group in assignments.values()
            for a in group
            if a.salary_structure_id is not None
        }
        structures = await self.repository.get_structures(tenant_id, structure_ids)
        return ResolutionContext(assignments=assignments, structures=structures)

    async def history(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> List[EmployeeSalaryAssignment]:
        await self._require_employee(tenant_id, employee_id)
        assignments = (await self.repository.list_assignments(tenant_id, [employee_id])).get(employee_id, [])
        return sorted(assignments, key=lambda a: a.effective_from)

    async def assign(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        effective_from: date,
        salary_structure_id: Optional[uuid.UUID] = None,
        effective_to: Optional[date] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        other_allowances: Optional[Mapping[str, Any]] = None,
        other_deductions: Optional[Mapping[str, Any]] = None,
        notes: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> EmployeeSalaryAssignment:
        """
        Record a new assignment starting ``effective_from``.

        Any earlier assignment still open at that date is closed at
        ``effective_from``. Assignments can only be appended after the
        latest existing start date; history is never rewritten.

        ``overrides`` may carry any of the component amounts
        (``basic_salary`` ... ``utility_allowance``) and applicability
        flags (``paye_applicable`` ...).
        """
        await self._require_employee(tenant_id, employee_id)
        overrides = dict(overrides or {})

        unknown = set(overrides) - set(AMOUNT_FIELDS) - set(FLAG_FIELDS)
        if unknown:
            raise ValidationException(
                f"Unknown override field(s): {', '.join(sorted(unknown))}",
                field="overrides",
                code=ErrorCode.INVALID_ASSIGNMENT,
            )

        amounts: Dict[str, Optional[Decimal]] = {}
        for name in AMOUNT_FIELDS:
            value = overrides.get(name)
            if value is None:
                amounts[name] = None
                continue
            value = as_decimal(value, field=name)
            if value < ZERO:
                raise InvalidAmountException(value, field=name)
            amounts[name] = value

        if salary_structure_id is not None:
            structures = await self.repository.get_structures(tenant_id, [salary_structure_id])
            structure = structures.get(salary_structure_id)
            if structure is None:
                raise SalaryStructureNotFoundError(salary_structure_id, employee_id)
            if not structure.is_active:
                raise ValidationException(
                    f"Salary structure '{structure.name}' is inactive",
                    field="salary_structure_id",
                    code=ErrorCode.INVALID_ASSIGNMENT,
                )
        elif amounts["basic_salary"] is None:
            raise ValidationException(
                "An assignment without a salary structure must set basic_salary",
                field="basic_salary",
                code=ErrorCode.INVALID_ASSIGNMENT,
            )

        if effective_to is not None and effective_to <= effective_from:
            raise ValidationException(
                "effective_to must be after effective_from",
                field="effective_to",
                code=ErrorCode.INVALID_ASSIGNMENT,
            )

        allowances = normalize_amount_map(other_allowances, AllowanceCode, "other_allowances")
        deductions = normalize_amount_map(other_deductions, DeductionCode, "other_deductions")

        existing = (await self.repository.list_assignments(tenant_id, [employee_id])).get(employee_id, [])
        later = [a for a in existing if a.effective_from >= effective_from]
        if later:
            raise ValidationException(
                f"Employee already has an assignment starting on or after {effective_from}",
                field="effective_from",
                code=ErrorCode.INVALID_ASSIGNMENT,
                details={"employee_id": str(employee_id), "conflicting_ids": [str(a.id) for a in later]},
            )

        closed = []
        for previous in existing:
            if previous.effective_to is None or previous.effective_to > effective_from:
                previous.effective_to = effective_from
                closed.append(previous)

        assignment = EmployeeSalaryAssignment(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            employee_id=employee_id,
            salary_structure_id=salary_structure_id,
            effective_from=effective_from,
            effective_to=effective_to,
            other_allowances=amounts_to_json(allowances) if allowances else None,
            other_deductions=amounts_to_json(deductions) if deductions else None,
            notes=notes,
            created_by_id=actor_id,
            **amounts,
            **{name: overrides.get(name) for name in FLAG_FIELDS},
        )
        await self.repository.save_assignments(closed + [assignment])

        logger.info(
            f"Salary assignment {assignment.id} for employee {employee_id} from {effective_from}"
            f" (closed {len(closed)} previous)"
        )
        return assignment

    async def _require_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> None:
        if await self.repository.get_employee(tenant_id, employee_id) is None:
            raise EmployeeNotFoundError(employee_id)
