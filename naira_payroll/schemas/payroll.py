"""
Naira Payroll Engine - Payroll Schemas

Pydantic schemas for payroll requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from naira_payroll.models.payroll import (
    AllowanceCode,
    DeductionCode,
    PayrollItemStatus,
    PayrollRunStatus,
)


# ===========================================
# TAX PREVIEW
# ===========================================

class TaxPreviewRequest(BaseModel):
    """Monthly gross salary to estimate deductions for."""
    monthly_gross: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)


class BandTaxResponse(BaseModel):
    lower: Decimal
    upper: Optional[Decimal] = None
    rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal

    class Config:
        from_attributes = True


class TaxPreviewResponse(BaseModel):
    """Estimated monthly payslip under the default compensation split."""
    gross_monthly: Decimal
    gross_annual: Decimal
    basic: Decimal
    housing: Decimal
    transport: Decimal
    paye_monthly: Decimal
    paye_annual: Decimal
    pension_employee: Decimal
    pension_employer: Decimal
    nhf: Decimal
    total_deductions: Decimal
    net_monthly: Decimal
    consolidated_relief: Decimal
    taxable_income_annual: Decimal
    effective_tax_rate: Decimal = Field(..., description="paye_annual / gross_annual")
    band_breakdown: List[BandTaxResponse]

    class Config:
        from_attributes = True


# ===========================================
# PAYROLL RUN SCHEMAS
# ===========================================

class PayrollRunCreate(BaseModel):
    """Create payroll run request."""
    period_start: date
    period_end: date
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.period_end < self.period_start:
            raise ValueError("Period end must not be before period start")
        return self


class PayrollRunResponse(BaseModel):
    """Payroll run with its aggregate totals."""
    id: UUID
    tenant_id: UUID
    name: str
    period_start: date
    period_end: date
    status: PayrollRunStatus
    version: int

    employee_count: int
    failed_count: int
    total_gross: Decimal
    total_paye: Decimal
    total_pension_employee: Decimal
    total_nhf: Decimal
    total_other_deductions: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_pension_employer: Decimal
    total_employer_contributions: Decimal

    created_by_id: Optional[UUID] = None
    processed_by_id: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    paid_by_id: Optional[UUID] = None
    paid_at: Optional[datetime] = None
    cancelled_by_id: Optional[UUID] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PayrollItemResponse(BaseModel):
    """One employee's payslip within a run."""
    id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    status: PayrollItemStatus
    failure_reason: Optional[str] = None
    failed_component: Optional[str] = None
    acknowledged_by_id: Optional[UUID] = None
    acknowledged_at: Optional[datetime] = None
    acknowledgement_reason: Optional[str] = None

    employee_name: str
    staff_number: str
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    pension_pin: Optional[str] = None
    pfa: Optional[str] = None
    tin: Optional[str] = None

    # Earnings
    basic_salary: Decimal
    housing_allowance: Decimal
    transport_allowance: Decimal
    meal_allowance: Decimal
    utility_allowance: Decimal
    other_allowances: Optional[Dict[str, Decimal]] = None
    gross_pay: Decimal

    # Deductions
    paye_tax: Decimal
    pension_employee: Decimal
    nhf: Decimal
    other_deductions: Optional[Dict[str, Decimal]] = None
    other_deductions_total: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    # Employer / annual
    pension_employer: Decimal
    consolidated_relief: Decimal
    taxable_income: Decimal
    annual_tax: Decimal
    tax_calculation: Optional[Dict[str, Any]] = None

    computed_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PayrollRunDetailResponse(PayrollRunResponse):
    """Payroll run with its items."""
    items: List[PayrollItemResponse] = []


class AcknowledgeFailuresRequest(BaseModel):
    """Exclude failed employees from the run."""
    employee_ids: List[UUID] = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)


class ProcessQueuedResponse(BaseModel):
    run_id: UUID
    task_id: str
    status: Literal["queued"] = "queued"


# ===========================================
# SALARY ASSIGNMENT SCHEMAS
# ===========================================

class SalaryAssignmentCreate(BaseModel):
    """
    Assign a salary structure (optionally with overrides) from a date.

    Omitted amounts and flags fall back to the structure.
    """
    effective_from: date
    effective_to: Optional[date] = None
    salary_structure_id: Optional[UUID] = None

    basic_salary: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    housing_allowance: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    transport_allowance: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    meal_allowance: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    utility_allowance: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)

    paye_applicable: Optional[bool] = None
    pension_applicable: Optional[bool] = None
    nhf_applicable: Optional[bool] = None

    other_allowances: Optional[Dict[AllowanceCode, Decimal]] = None
    other_deductions: Optional[Dict[DeductionCode, Decimal]] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def validate_interval(self):
        if self.effective_to is not None and self.effective_to <= self.effective_from:
            raise ValueError("effective_to must be after effective_from")
        return self

    def overrides(self) -> Dict[str, Any]:
        return self.model_dump(
            include={
                "basic_salary", "housing_allowance", "transport_allowance",
                "meal_allowance", "utility_allowance",
                "paye_applicable", "pension_applicable", "nhf_applicable",
            },
            exclude_none=True,
        )


class SalaryAssignmentResponse(BaseModel):
    id: UUID
    employee_id: UUID
    salary_structure_id: Optional[UUID] = None
    effective_from: date
    effective_to: Optional[date] = None
    basic_salary: Optional[Decimal] = None
    housing_allowance: Optional[Decimal] = None
    transport_allowance: Optional[Decimal] = None
    meal_allowance: Optional[Decimal] = None
    utility_allowance: Optional[Decimal] = None
    other_allowances: Optional[Dict[str, Decimal]] = None
    other_deductions: Optional[Dict[str, Decimal]] = None
    paye_applicable: Optional[bool] = None
    pension_applicable: Optional[bool] = None
    nhf_applicable: Optional[bool] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class CompensationResponse(BaseModel):
    """Effective monthly compensation for an employee on a date."""
    employee_id: UUID
    as_of: date
    basic: Decimal
    housing: Decimal
    transport: Decimal
    meal: Decimal
    utility: Decimal
    other_allowances: Dict[str, Decimal]
    other_deductions: Dict[str, Decimal]
    paye_applicable: bool
    pension_applicable: bool
    nhf_applicable: bool


# ===========================================
# REPORT SCHEMAS
# ===========================================

class PensionScheduleEntry(BaseModel):
    employee_id: UUID
    staff_number: str
    employee_name: str
    pension_pin: Optional[str] = None
    employee_contribution: Decimal
    employer_contribution: Decimal
    total_contribution: Decimal


class PensionScheduleGroup(BaseModel):
    pfa: str
    employee_count: int
    total_employee_contribution: Decimal
    total_employer_contribution: Decimal
    total_contribution: Decimal
    entries: List[PensionScheduleEntry]


class PensionScheduleResponse(BaseModel):
    run_id: UUID
    period_start: date
    period_end: date
    total_employee_contribution: Decimal
    total_employer_contribution: Decimal
    groups: List[PensionScheduleGroup]


class BankScheduleLine(BaseModel):
    employee_id: UUID
    staff_number: str
    employee_name: str
    bank_name: str
    account_number: str
    account_name: str
    amount: Decimal
    narration: str


class MissingBankDetails(BaseModel):
    employee_id: UUID
    staff_number: str


class BankScheduleResponse(BaseModel):
    run_id: UUID
    run_name: str
    total_amount: Decimal
    total_employees: int
    items: List[BankScheduleLine]
    missing_bank_details: List[MissingBankDetails]


class RemittanceDue(BaseModel):
    remittance_type: Literal["paye", "pension", "nhf"]
    amount_due: Decimal
    due_date: date


class StatutorySummaryResponse(BaseModel):
    run_id: UUID
    period_start: date
    period_end: date
    total_due: Decimal
    remittances: List[RemittanceDue]


class PayslipHistoryEntry(BaseModel):
    run_id: UUID
    run_name: str
    run_status: PayrollRunStatus
    period_start: date
    period_end: date
    gross_pay: Decimal
    paye_tax: Decimal
    pension_employee: Decimal
    nhf: Decimal
    other_deductions_total: Decimal
    total_deductions: Decimal
    net_pay: Decimal


class EmployeePayrollHistoryResponse(BaseModel):
    """Payslips from approved and paid runs."""
    employee_id: UUID
    year: Optional[int] = None
    total_gross: Decimal
    total_paye: Decimal
    total_net: Decimal
    payslips: List[PayslipHistoryEntry]


class P9AMonth(BaseModel):
    month: int = Field(..., ge=1, le=12)
    gross: Decimal
    tax_deducted: Decimal
    pension: Decimal


class P9AResponse(BaseModel):
    """Annual tax deduction card (Form P9A)."""
    year: int
    employee_id: UUID
    employee_name: str
    staff_number: str
    tin: Optional[str] = None
    months: List[P9AMonth]
    annual_gross: Decimal
    annual_tax_deducted: Decimal
    annual_pension: Decimal
