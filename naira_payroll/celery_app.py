"""
Naira Payroll Engine - Celery Configuration

Celery configuration for background payroll processing.
Uses Redis as the message broker and result backend.
"""

from celery import Celery

from naira_payroll.config import settings


celery_app = Celery(
    'naira_payroll',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['naira_payroll.tasks.payroll_tasks'],
)

celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone='Africa/Lagos',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=1800,  # 30 minutes
    task_soft_time_limit=1500,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours
)
