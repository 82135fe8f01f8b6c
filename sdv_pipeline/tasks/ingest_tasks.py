import asyncio

from .celery_app import BaseTask, celery_app
from .runners import run_chunk_task
from ..core.constants import TASK_PROCESS_UPLOAD_CHUNK
from ..core.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(bind=True, base=BaseTask, name=TASK_PROCESS_UPLOAD_CHUNK)
def process_upload_chunk(
    self,
    job_id: str,
    upload_id: str,
    chunk_number: int,
    total_chunks: int,
    path: str,
    job_type: str,
):
    """
    Persist one staged chunk of an upload.

    Chunk failures are recorded on the job by the service, so the task itself
    is not retried.
    """
    logger.info(f"Task {self.request.id}: chunk {chunk_number}/{total_chunks} of job {job_id}")
    result = asyncio.run(run_chunk_task({
        "job_id": job_id,
        "upload_id": upload_id,
        "chunk_number": chunk_number,
        "total_chunks": total_chunks,
        "path": path,
        "job_type": job_type,
    }))
    return result.model_dump(mode="json")
