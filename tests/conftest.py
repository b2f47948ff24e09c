"""
Naira Payroll Engine - Test Configuration

Pytest fixtures and configuration.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from naira_payroll.dependencies import get_payroll_repository, get_tax_bands
from naira_payroll.models.payroll import Employee, SalaryStructure
from naira_payroll.services.payroll_service import PayrollRunOrchestrator
from naira_payroll.services.salary_resolver import SalaryResolver
from naira_payroll.services.tax_bands import TaxBandTable
from naira_payroll.services.tax_engine import TaxEngine
from main import app

from tests.fakes import InMemoryPayrollRepository, make_assignment, make_employee, make_structure


JANUARY_START = date(2026, 1, 1)
JANUARY_END = date(2026, 1, 31)


@dataclass
class PayrollSetup:
    tenant_id: UUID
    structure: SalaryStructure
    employees: List[Employee]


@pytest.fixture
def tenant_id() -> UUID:
    return uuid4()


@pytest.fixture
def tax_bands() -> TaxBandTable:
    return TaxBandTable.default()


@pytest.fixture
def engine() -> TaxEngine:
    return TaxEngine()


@pytest.fixture
def repository() -> InMemoryPayrollRepository:
    return InMemoryPayrollRepository()


@pytest.fixture
def payroll_setup(repository: InMemoryPayrollRepository, tenant_id: UUID) -> PayrollSetup:
    """
    Three payable employees:
    - E001 on the Grade 7 structure (₦500,000 gross)
    - E002 on Grade 7 with a ₦20,000 loan repayment
    - E003 with no structure, ₦150,000 basic only
    """
    structure = repository.add_structure(make_structure(tenant_id))

    e1 = repository.add_employee(make_employee(tenant_id, "E001", "Adaeze", "Okafor"))
    e2 = repository.add_employee(make_employee(tenant_id, "E002", "Babatunde", "Adeyemi"))
    e3 = repository.add_employee(make_employee(
        tenant_id, "E003", "Chinedu", "Eze",
        pfa=None, bank_name="GTBank", account_number="0123456789",
    ))

    repository.add_assignment(make_assignment(tenant_id, e1.id, salary_structure_id=structure.id))
    repository.add_assignment(make_assignment(
        tenant_id, e2.id,
        salary_structure_id=structure.id,
        other_deductions={"loan_repayment": "20000.00"},
    ))
    repository.add_assignment(make_assignment(tenant_id, e3.id, basic_salary=Decimal("150000.00")))

    return PayrollSetup(tenant_id=tenant_id, structure=structure, employees=[e1, e2, e3])


@pytest.fixture
def orchestrator(repository: InMemoryPayrollRepository, tax_bands: TaxBandTable) -> PayrollRunOrchestrator:
    # Small batches so multi-batch processing is exercised
    return PayrollRunOrchestrator(repository, tax_bands=tax_bands, batch_size=2, max_concurrency=2)


@pytest.fixture
def resolver(repository: InMemoryPayrollRepository) -> SalaryResolver:
    return SalaryResolver(repository)


@pytest_asyncio.fixture(scope="function")
async def client(
    repository: InMemoryPayrollRepository,
    tax_bands: TaxBandTable,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client backed by the in-memory repository."""

    async def override_repository():
        return repository

    app.dependency_overrides[get_payroll_repository] = override_repository
    app.dependency_overrides[get_tax_bands] = lambda: tax_bands

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers(tenant_id: UUID) -> dict:
    return {"X-Tenant-ID": str(tenant_id), "X-Actor-ID": str(uuid4())}
