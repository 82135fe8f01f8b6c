import asyncio
from typing import Optional

from .celery_app import BaseTask, celery_app
from .runners import run_stale_sweep
from ..core.config import get_settings
from ..core.constants import TASK_FAIL_STALE_JOBS
from ..core.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(bind=True, base=BaseTask, name=TASK_FAIL_STALE_JOBS)
def fail_stale_jobs(self, older_than_seconds: Optional[int] = None):
    """Fail processing jobs with no tracker write within the configured deadline."""
    seconds = older_than_seconds or get_settings().pipeline.job_stale_after_seconds
    if not seconds:
        logger.info("Stale job sweep is disabled")
        return {"failed_jobs": []}

    failed = asyncio.run(run_stale_sweep(seconds))
    return {"failed_jobs": [str(job_id) for job_id in failed]}
