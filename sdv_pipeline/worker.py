#!/usr/bin/env python
"""
Celery worker entry point

Run with:
    celery -A sdv_pipeline.worker worker -Q ingest,merge,maintenance --loglevel=info

Stale job sweeps (when PIPELINE_JOB_STALE_AFTER_SECONDS is set):
    celery -A sdv_pipeline.worker beat --loglevel=info
"""

from celery.signals import worker_init

from .core.logging import setup_logging
from .infrastructure.db.connection import database_manager
from .tasks.celery_app import celery_app

# Import all tasks to register them
from .tasks import ingest_tasks  # noqa: F401
from .tasks import maintenance_tasks  # noqa: F401
from .tasks import merge_tasks  # noqa: F401

celery_app.conf.update(
    task_track_started=True,
    task_time_limit=7200,  # 2 hours
    task_soft_time_limit=6900,
    worker_max_tasks_per_child=1000,
)


@worker_init.connect
def prepare_worker(**kwargs):
    setup_logging()
    database_manager.create_tables()


if __name__ == "__main__":
    celery_app.start()
