"""
Naira Payroll Engine - Payroll Tasks

Processes payroll runs on a Celery worker.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from naira_payroll.celery_app import celery_app
from naira_payroll.config import settings
from naira_payroll.services.payroll_repository import SqlAlchemyPayrollRepository
from naira_payroll.services.payroll_service import PayrollRunOrchestrator
from naira_payroll.utils.error_handling import PartialComputationFailure

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name='naira_payroll.tasks.payroll_tasks.process_payroll_run_task')
def process_payroll_run_task(tenant_id: str, run_id: str, actor_id: Optional[str] = None) -> Dict[str, Any]:
    """Process a payroll run; failed employees are reported in the result."""
    return run_async(_process_payroll_run(tenant_id, run_id, actor_id))


async def _process_payroll_run(
    tenant_id: str,
    run_id: str,
    actor_id: Optional[str] = None,
    session_factory: Optional[async_sessionmaker] = None,
) -> Dict[str, Any]:
    """Async implementation of payroll run processing."""
    engine = None
    if session_factory is None:
        # Pooled connections cannot outlive the per-task event loop
        engine = create_async_engine(settings.database_url_async, poolclass=NullPool)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    try:
        async with session_factory() as db:
            orchestrator = PayrollRunOrchestrator(SqlAlchemyPayrollRepository(db))
            try:
                run = await orchestrator.process(
                    uuid.UUID(tenant_id),
                    uuid.UUID(run_id),
                    actor_id=uuid.UUID(actor_id) if actor_id else None,
                )
            except PartialComputationFailure as e:
                logger.warning(f"Payroll run {run_id} processed with {len(e.failures)} failure(s)")
                return {
                    "run_id": run_id,
                    "status": e.details["status"],
                    "failures": e.failures,
                    "totals": e.details["totals"],
                }

            logger.info(f"Payroll run {run_id} processed in background")
            return {
                "run_id": run_id,
                "status": run.status.value,
                "failures": [],
                "totals": {name: str(value) for name, value in run.totals().items()},
            }
    finally:
        if engine is not None:
            await engine.dispose()
