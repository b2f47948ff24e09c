"""
Naira Payroll Engine - Payroll Router

API endpoints for payroll runs, salary assignments, tax previews and
statutory schedules.
"""

import logging
import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status
from fastapi.responses import JSONResponse

from naira_payroll.dependencies import (
    get_actor_id,
    get_orchestrator,
    get_preview_split,
    get_report_service,
    get_salary_resolver,
    get_tax_bands,
    get_tax_engine,
    get_tenant_id,
)
from naira_payroll.models.payroll import PayrollRunStatus
from naira_payroll.schemas.payroll import (
    # Preview
    TaxPreviewRequest,
    TaxPreviewResponse,
    # Runs
    AcknowledgeFailuresRequest,
    PayrollItemResponse,
    PayrollRunCreate,
    PayrollRunDetailResponse,
    PayrollRunResponse,
    ProcessQueuedResponse,
    # Salary assignments
    CompensationResponse,
    SalaryAssignmentCreate,
    SalaryAssignmentResponse,
    # Reports
    BankScheduleResponse,
    EmployeePayrollHistoryResponse,
    P9AResponse,
    PensionScheduleResponse,
    StatutorySummaryResponse,
)
from naira_payroll.services.payroll_reports import PayrollReportService
from naira_payroll.services.payroll_service import PayrollRunOrchestrator
from naira_payroll.services.salary_resolver import SalaryResolver
from naira_payroll.services.tax_bands import TaxBandTable
from naira_payroll.services.tax_engine import PreviewSplit, TaxEngine
from naira_payroll.tasks.payroll_tasks import process_payroll_run_task

logger = logging.getLogger(__name__)

router = APIRouter()


# ===========================================
# TAX PREVIEW
# ===========================================

@router.post(
    "/tax-preview",
    response_model=TaxPreviewResponse,
    summary="Estimate PAYE, pension and NHF for a monthly gross",
    description="Nothing is persisted. The gross is split into basic/housing/transport before computing.",
)
async def tax_preview(
    data: TaxPreviewRequest,
    as_of: Optional[date] = Query(None, description="Date selecting the tax band version (defaults to today)"),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    tax_bands: TaxBandTable = Depends(get_tax_bands),
    engine: TaxEngine = Depends(get_tax_engine),
    split: PreviewSplit = Depends(get_preview_split),
):
    band_set = tax_bands.bands_for(tenant_id, as_of or date.today())
    preview = engine.preview(data.monthly_gross, band_set, split)
    return TaxPreviewResponse.model_validate(preview)


# ===========================================
# PAYROLL RUN ENDPOINTS
# ===========================================

@router.post(
    "/runs",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft payroll run",
)
async def create_payroll_run(
    data: PayrollRunCreate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    run = await orchestrator.create_run(
        tenant_id,
        data.period_start,
        data.period_end,
        name=data.name,
        notes=data.notes,
        actor_id=actor_id,
    )
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/runs",
    response_model=List[PayrollRunResponse],
    summary="List payroll runs",
)
async def list_payroll_runs(
    status_filter: Optional[PayrollRunStatus] = Query(None, alias="status"),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    runs = await orchestrator.list_runs(tenant_id, status_filter)
    return [PayrollRunResponse.model_validate(r) for r in runs]


@router.get(
    "/runs/{run_id}",
    response_model=PayrollRunDetailResponse,
    summary="Get a payroll run with its items",
)
async def get_payroll_run(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    run, items = await orchestrator.get_run(tenant_id, run_id)
    return PayrollRunDetailResponse(
        **PayrollRunResponse.model_validate(run).model_dump(),
        items=[PayrollItemResponse.model_validate(i) for i in items],
    )


@router.delete(
    "/runs/{run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a draft payroll run",
)
async def delete_payroll_run(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    await orchestrator.delete_run(tenant_id, run_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/runs/{run_id}/process",
    response_model=PayrollRunResponse,
    summary="Compute payslips for every payable employee",
    description=(
        "Idempotent; re-processing recomputes items and totals. "
        "With background=true the run is processed by a worker and 202 is returned."
    ),
    responses={202: {"model": ProcessQueuedResponse}},
)
async def process_payroll_run(
    run_id: uuid.UUID,
    background: bool = Query(False),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    if background:
        # Fail fast on unknown runs before queueing
        await orchestrator.get_run(tenant_id, run_id)
        task = process_payroll_run_task.delay(
            str(tenant_id), str(run_id), str(actor_id) if actor_id else None,
        )
        logger.info(f"Queued payroll run {run_id} for background processing (task {task.id})")
        queued = ProcessQueuedResponse(run_id=run_id, task_id=str(task.id))
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=queued.model_dump(mode="json"))

    run = await orchestrator.process(tenant_id, run_id, actor_id=actor_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/runs/{run_id}/acknowledge-failures",
    response_model=PayrollRunResponse,
    summary="Exclude failed employees from the run",
)
async def acknowledge_failures(
    run_id: uuid.UUID,
    data: AcknowledgeFailuresRequest,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    run = await orchestrator.acknowledge_failures(
        tenant_id, run_id, data.employee_ids, actor_id=actor_id, reason=data.reason,
    )
    return PayrollRunResponse.model_validate(run)


@router.post("/runs/{run_id}/approve", response_model=PayrollRunResponse, summary="Approve a payroll run")
async def approve_payroll_run(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    run = await orchestrator.approve(tenant_id, run_id, actor_id=actor_id)
    return PayrollRunResponse.model_validate(run)


@router.post("/runs/{run_id}/mark-paid", response_model=PayrollRunResponse, summary="Mark a payroll run as paid")
async def mark_payroll_run_paid(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    run = await orchestrator.mark_paid(tenant_id, run_id, actor_id=actor_id)
    return PayrollRunResponse.model_validate(run)


@router.post("/runs/{run_id}/cancel", response_model=PayrollRunResponse, summary="Cancel a payroll run")
async def cancel_payroll_run(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    orchestrator: PayrollRunOrchestrator = Depends(get_orchestrator),
):
    run = await orchestrator.cancel(tenant_id, run_id, actor_id=actor_id)
    return PayrollRunResponse.model_validate(run)


# ===========================================
# REPORTS
# ===========================================

@router.get("/runs/{run_id}/pension-schedule", response_model=PensionScheduleResponse)
async def get_pension_schedule(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    reports: PayrollReportService = Depends(get_report_service),
):
    """Pension contributions grouped by PFA."""
    return await reports.pension_schedule(tenant_id, run_id)


@router.get("/runs/{run_id}/bank-schedule", response_model=BankScheduleResponse)
async def get_bank_schedule(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    reports: PayrollReportService = Depends(get_report_service),
):
    """Net salary payment lines. Approved or paid runs only."""
    return await reports.bank_schedule(tenant_id, run_id)


@router.get("/runs/{run_id}/statutory-summary", response_model=StatutorySummaryResponse)
async def get_statutory_summary(
    run_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    reports: PayrollReportService = Depends(get_report_service),
):
    return await reports.statutory_summary(tenant_id, run_id)


@router.get(
    "/reports/p9a/{year}/{employee_id}",
    response_model=P9AResponse,
    summary="Annual P9A tax deduction card",
)
async def get_p9a(
    employee_id: uuid.UUID,
    year: int = Path(..., ge=2000, le=9999),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    reports: PayrollReportService = Depends(get_report_service),
):
    return await reports.p9a(tenant_id, employee_id, year)


# ===========================================
# SALARY ASSIGNMENT ENDPOINTS
# ===========================================

@router.post(
    "/employees/{employee_id}/salary-assignments",
    response_model=SalaryAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign compensation from a date",
    description="Closes any assignment still open at effective_from.",
)
async def create_salary_assignment(
    employee_id: uuid.UUID,
    data: SalaryAssignmentCreate,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    actor_id: Optional[uuid.UUID] = Depends(get_actor_id),
    resolver: SalaryResolver = Depends(get_salary_resolver),
):
    assignment = await resolver.assign(
        tenant_id,
        employee_id,
        data.effective_from,
        salary_structure_id=data.salary_structure_id,
        effective_to=data.effective_to,
        overrides=data.overrides(),
        other_allowances={code.value: amount for code, amount in (data.other_allowances or {}).items()},
        other_deductions={code.value: amount for code, amount in (data.other_deductions or {}).items()},
        notes=data.notes,
        actor_id=actor_id,
    )
    return SalaryAssignmentResponse.model_validate(assignment)


@router.get(
    "/employees/{employee_id}/salary-assignments",
    response_model=List[SalaryAssignmentResponse],
    summary="Salary assignment history",
)
async def list_salary_assignments(
    employee_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    resolver: SalaryResolver = Depends(get_salary_resolver),
):
    assignments = await resolver.history(tenant_id, employee_id)
    return [SalaryAssignmentResponse.model_validate(a) for a in assignments]


@router.get(
    "/employees/{employee_id}/compensation",
    response_model=CompensationResponse,
    summary="Effective compensation on a date",
)
async def get_compensation(
    employee_id: uuid.UUID,
    as_of: date = Query(..., description="Date to resolve compensation for"),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    resolver: SalaryResolver = Depends(get_salary_resolver),
):
    snapshot = await resolver.resolve(tenant_id, employee_id, as_of)
    return CompensationResponse(
        employee_id=employee_id,
        as_of=as_of,
        basic=snapshot.basic,
        housing=snapshot.housing,
        transport=snapshot.transport,
        meal=snapshot.meal,
        utility=snapshot.utility,
        other_allowances=snapshot.other_allowances,
        other_deductions=snapshot.other_deductions,
        paye_applicable=snapshot.paye_applicable,
        pension_applicable=snapshot.pension_applicable,
        nhf_applicable=snapshot.nhf_applicable,
    )


@router.get(
    "/employees/{employee_id}/history",
    response_model=EmployeePayrollHistoryResponse,
    summary="Payslip history from approved and paid runs",
)
async def get_employee_payroll_history(
    employee_id: uuid.UUID,
    year: Optional[int] = Query(None, ge=2000, le=9999, description="Only runs ending in this year"),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    reports: PayrollReportService = Depends(get_report_service),
):
    return await reports.employee_history(tenant_id, employee_id, year)
