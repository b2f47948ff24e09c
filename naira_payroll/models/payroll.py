"""
Naira Payroll Engine - Payroll Models

Persistent records for Nigerian statutory payroll:
- Employees (read-only master data supplied by HR)
- Salary structures and time-bounded salary assignments
- Payroll runs and their per-employee items (payslips)

Nigerian Statutory Deductions:
1. Employee Pension: 8% of Basic, Housing, Transport
2. Employer Pension: 10% of Basic, Housing, Transport (reported, not deducted)
3. NHF: 2.5% of Basic Salary
4. PAYE: progressive bands after Consolidated Relief Allowance
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    Enum as SQLEnum, JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from naira_payroll.models.base import BaseModel, TenantMixin


ZERO = Decimal("0.00")


# ===========================================
# ENUMS
# ===========================================

class EmploymentStatus(str, Enum):
    """Employment status."""
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    RESIGNED = "resigned"
    RETIRED = "retired"


PAYABLE_STATUSES = frozenset({EmploymentStatus.ACTIVE, EmploymentStatus.ON_LEAVE})


class PayrollRunStatus(str, Enum):
    """Payroll run lifecycle."""
    DRAFT = "draft"
    PROCESSING = "processing"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


# Runs whose items are final and count towards payslip history
FINALIZED_STATUSES = frozenset({PayrollRunStatus.APPROVED, PayrollRunStatus.PAID})


class PayrollItemStatus(str, Enum):
    """Outcome of one employee's computation within a run."""
    COMPUTED = "computed"
    FAILED = "failed"
    EXCLUDED = "excluded"  # Failure acknowledged, employee left out of this run


class AllowanceCode(str, Enum):
    """Non-statutory allowance codes accepted in other_allowances maps."""
    LEAVE = "leave"
    MEDICAL = "medical"
    CLOTHING = "clothing"
    ENTERTAINMENT = "entertainment"
    HARDSHIP = "hardship"
    OVERTIME = "overtime"
    BONUS = "bonus"
    COMMISSION = "commission"
    RESPONSIBILITY = "responsibility"
    SHIFT = "shift"
    OTHER = "other"


class DeductionCode(str, Enum):
    """Non-statutory deduction codes accepted in other_deductions maps."""
    LOAN_REPAYMENT = "loan_repayment"
    SALARY_ADVANCE = "salary_advance"
    COOPERATIVE = "cooperative"
    UNION_DUES = "union_dues"
    INSURANCE_PREMIUM = "insurance_premium"
    VOLUNTARY_PENSION = "voluntary_pension"
    OTHER = "other"


class PensionFundAdministrator(str, Enum):
    """Licensed Pension Fund Administrators in Nigeria."""
    ARM = "arm_pension"
    AXA_MANSARD = "axa_mansard_pension"
    CRUSADER = "crusader_sterling_pension"
    FCMB = "fcmb_pensions"
    FIDELITY = "fidelity_pension"
    LEADWAY = "leadway_pensure"
    NLPC = "nlpc_pension"
    NPF = "npf_pensions"
    OAK = "oak_pensions"
    PAL = "pal_pensions"
    PREMIUM = "premium_pension"
    STANBIC_IBTC = "stanbic_ibtc_pension"
    TANGERINE = "tangerine_apt_pensions"
    TRUSTFUND = "trustfund_pensions"
    VERITAS = "veritas_glanvills_pensions"
    OTHER = "other"


# ===========================================
# EMPLOYEE (read-only master data)
# ===========================================

class Employee(BaseModel, TenantMixin):
    """
    Employee record as supplied by HR master data.

    The payroll core never writes to this table; it only reads the
    identity, employment dates and the payment details that are
    snapshotted onto each payroll item.
    """

    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'staff_number', name='uq_employee_tenant_staff_number'),
    )

    staff_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Internal employee ID/staff number",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    middle_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    employment_status: Mapped[EmploymentStatus] = mapped_column(
        SQLEnum(EmploymentStatus),
        default=EmploymentStatus.ACTIVE,
        nullable=False,
    )
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    termination_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Tax & pension identification
    tin: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Tax Identification Number",
    )
    pension_pin: Mapped[Optional[str]] = mapped_column(
        String(30), nullable=True,
        comment="RSA PIN (Retirement Savings Account)",
    )
    pfa: Mapped[Optional[PensionFundAdministrator]] = mapped_column(
        SQLEnum(PensionFundAdministrator),
        nullable=True,
    )

    # Salary payment details
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(
        String(10), nullable=True,
        comment="NUBAN account number",
    )
    account_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def is_payable_in(self, period_start: date, period_end: date) -> bool:
        """
        Whether the employee belongs on a payroll for the period.

        Mid-period joiners are included (no pro-ration). Separated
        employees are included only if they left during or after the
        period start.
        """
        if self.hire_date is not None and self.hire_date > period_end:
            return False
        if self.termination_date is not None:
            return self.termination_date >= period_start
        return self.employment_status in PAYABLE_STATUSES


# ===========================================
# SALARY STRUCTURES & ASSIGNMENTS
# ===========================================

class SalaryStructure(BaseModel, TenantMixin):
    """
    Named compensation template.

    Component amounts are monthly. The applicability flags let an
    employment type (interns, non-resident contractors) be exempted from
    PAYE, pension or NHF without a separate formula.
    """

    __tablename__ = "salary_structures"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_salary_structure_tenant_name'),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
    )
    housing_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
    )
    transport_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
    )
    meal_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
    )
    utility_allowance: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
    )
    other_allowances: Mapped[Optional[Dict[str, str]]] = mapped_column(
        JSON, nullable=True,
        comment="AllowanceCode -> monthly amount (decimal string)",
    )

    paye_applicable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    pension_applicable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    nhf_applicable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class EmployeeSalaryAssignment(BaseModel, TenantMixin):
    """
    Binds an employee to a salary structure for ``[effective_from, effective_to)``.

    Records are never edited to point at a new salary: a change appends a
    new record and closes the previous one, so historical runs can always
    be recomputed against what was actually in force.

    Override columns left NULL fall back to the structure's value.
    """

    __tablename__ = "employee_salary_assignments"
    __table_args__ = (
        CheckConstraint(
            'effective_to IS NULL OR effective_to > effective_from',
            name='assignment_interval_not_empty',
        ),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    salary_structure_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("salary_structures.id", ondelete="RESTRICT"),
        nullable=True,
    )

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[Optional[date]] = mapped_column(
        Date, nullable=True,
        comment="Exclusive end; NULL while the assignment is open-ended",
    )

    # Overrides (NULL = use structure)
    basic_salary: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    housing_allowance: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    transport_allowance: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    meal_allowance: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    utility_allowance: Mapped[Optional[Decimal]] = mapped_column(Numeric(precision=15, scale=2), nullable=True)
    other_allowances: Mapped[Optional[Dict[str, str]]] = mapped_column(JSON, nullable=True)

    paye_applicable: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    pension_applicable: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    nhf_applicable: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Recurring non-statutory deductions (loan repayments etc.)
    other_deductions: Mapped[Optional[Dict[str, str]]] = mapped_column(
        JSON, nullable=True,
        comment="DeductionCode -> monthly amount (decimal string)",
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    def covers(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of < self.effective_to


# ===========================================
# PAYROLL RUNS
# ===========================================

RUN_TOTAL_FIELDS = (
    "total_gross",
    "total_paye",
    "total_pension_employee",
    "total_nhf",
    "total_other_deductions",
    "total_deductions",
    "total_net",
    "total_pension_employer",
    "total_employer_contributions",
)


class PayrollRun(BaseModel, TenantMixin):
    """
    One payroll computation for a tenant and period ``[period_start, period_end]``.

    ``version`` is managed by the application and checked by SQLAlchemy on
    every UPDATE, so a transition based on a stale read fails instead of
    overwriting.
    """

    __tablename__ = "payroll_runs"
    __table_args__ = (
        CheckConstraint('period_end >= period_start', name='run_period_valid'),
    )

    name: Mapped[str] = mapped_column(
        String(200), nullable=False,
        comment="Descriptive name e.g., 'January 2026 Payroll'",
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PayrollRunStatus] = mapped_column(
        SQLEnum(PayrollRunStatus),
        default=PayrollRunStatus.DRAFT,
        nullable=False,
        index=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Summary (always re-derived from items)
    employee_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_paye: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_pension_employee: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_nhf: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_other_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_net: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_pension_employer: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )

    # Workflow
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    processed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[List["PayrollItem"]] = relationship(
        "PayrollItem",
        back_populates="payroll_run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def reset_totals(self) -> None:
        for field in RUN_TOTAL_FIELDS:
            setattr(self, field, ZERO)
        self.employee_count = 0
        self.failed_count = 0

    def totals(self) -> Dict[str, Decimal]:
        return {field: getattr(self, field) for field in RUN_TOTAL_FIELDS}


class PayrollItem(BaseModel):
    """
    One employee's payslip within a run.

    Bank and pension details are copied at computation time so that later
    master-data edits never change a historical payslip. Items are locked
    (``locked_at``) when the run is approved.
    """

    __tablename__ = "payroll_items"
    __table_args__ = (
        UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payroll_item_run_employee'),
    )

    payroll_run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payroll_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status: Mapped[PayrollItemStatus] = mapped_column(
        SQLEnum(PayrollItemStatus),
        default=PayrollItemStatus.COMPUTED,
        nullable=False,
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failed_component: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    acknowledged_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledgement_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Snapshot of employee details at computation time
    employee_name: Mapped[str] = mapped_column(String(300), nullable=False)
    staff_number: Mapped[str] = mapped_column(String(50), nullable=False)
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    account_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pension_pin: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    pfa: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tin: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Earnings
    basic_salary: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    housing_allowance: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    transport_allowance: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    meal_allowance: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    utility_allowance: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    other_allowances: Mapped[Optional[Dict[str, str]]] = mapped_column(JSON, nullable=True)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)

    # Statutory deductions
    paye_tax: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    pension_employee: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    nhf: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)

    # Non-statutory deductions
    other_deductions: Mapped[Optional[Dict[str, str]]] = mapped_column(JSON, nullable=True)
    other_deductions_total: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
    )

    total_deductions: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)

    # Employer contributions (not deducted)
    pension_employer: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)

    # Annual tax workings
    consolidated_relief: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
        comment="Annual Consolidated Relief Allowance",
    )
    taxable_income: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=ZERO, nullable=False,
        comment="Annual taxable income",
    )
    annual_tax: Mapped[Decimal] = mapped_column(Numeric(precision=15, scale=2), default=ZERO, nullable=False)
    tax_calculation: Mapped[Optional[dict]] = mapped_column(
        JSON, nullable=True,
        comment="Band-by-band PAYE breakdown",
    )

    computed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    payroll_run: Mapped["PayrollRun"] = relationship("PayrollRun", back_populates="items")

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    @property
    def employer_contributions(self) -> Decimal:
        return self.pension_employer
