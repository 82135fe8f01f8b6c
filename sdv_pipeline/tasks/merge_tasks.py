import asyncio

from .celery_app import BaseTask, celery_app
from .runners import run_merge_task
from ..core.constants import TASK_MERGE_UPLOAD
from ..core.exceptions import MergeError
from ..core.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(
    bind=True,
    base=BaseTask,
    name=TASK_MERGE_UPLOAD,
    max_retries=3,
    default_retry_delay=30,
)
def merge_upload(self, primary_upload_id: str, tenant_id: str):
    """
    Rebuild the merged records of a site data entry upload.

    Merges replace their output wholesale, so a failed run is retried as is.
    Unknown or wrong-kind uploads are not retried.
    """
    logger.info(f"Task {self.request.id}: merging upload {primary_upload_id}")
    try:
        result = asyncio.run(run_merge_task({
            "primary_upload_id": primary_upload_id,
            "tenant_id": tenant_id,
        }))
    except MergeError as e:
        raise self.retry(exc=e)
    return result.model_dump(mode="json")
