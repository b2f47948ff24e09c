"""
Naira Payroll Engine - FastAPI Dependencies

Shared dependencies for request context, database-backed repositories
and the payroll services.

Authentication is handled upstream; the gateway forwards the tenant and
acting user as headers:
1. X-Tenant-ID (required)
2. X-Actor-ID (optional, recorded on audit fields)
"""

import uuid
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from naira_payroll.config import settings
from naira_payroll.database import get_async_session
from naira_payroll.services.payroll_reports import PayrollReportService
from naira_payroll.services.payroll_repository import PayrollRepository, SqlAlchemyPayrollRepository
from naira_payroll.services.payroll_service import PayrollRunOrchestrator
from naira_payroll.services.salary_resolver import SalaryResolver
from naira_payroll.services.tax_bands import TaxBandTable, get_tax_band_table
from naira_payroll.services.tax_engine import PreviewSplit, TaxEngine
from naira_payroll.utils.error_handling import ValidationException


def _parse_uuid(value: str, header: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise ValidationException(f"{header} must be a UUID", field=header)


async def get_tenant_id(x_tenant_id: str = Header(..., alias="X-Tenant-ID")) -> uuid.UUID:
    """Tenant the request acts on."""
    return _parse_uuid(x_tenant_id, "X-Tenant-ID")


async def get_actor_id(x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-ID")) -> Optional[uuid.UUID]:
    if not x_actor_id:
        return None
    return _parse_uuid(x_actor_id, "X-Actor-ID")


async def get_payroll_repository(
    db: AsyncSession = Depends(get_async_session),
) -> PayrollRepository:
    return SqlAlchemyPayrollRepository(db)


def get_tax_bands() -> TaxBandTable:
    return get_tax_band_table()


def get_tax_engine() -> TaxEngine:
    return TaxEngine()


def get_preview_split() -> PreviewSplit:
    return PreviewSplit(
        basic=settings.preview_basic_ratio,
        housing=settings.preview_housing_ratio,
        transport=settings.preview_transport_ratio,
    )


async def get_orchestrator(
    repository: PayrollRepository = Depends(get_payroll_repository),
    tax_bands: TaxBandTable = Depends(get_tax_bands),
    engine: TaxEngine = Depends(get_tax_engine),
) -> PayrollRunOrchestrator:
    return PayrollRunOrchestrator(repository, tax_bands=tax_bands, engine=engine)


async def get_salary_resolver(
    repository: PayrollRepository = Depends(get_payroll_repository),
) -> SalaryResolver:
    return SalaryResolver(repository)


async def get_report_service(
    repository: PayrollRepository = Depends(get_payroll_repository),
) -> PayrollReportService:
    return PayrollReportService(repository)
