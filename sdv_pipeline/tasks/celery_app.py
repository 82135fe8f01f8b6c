from datetime import timedelta

from celery import Celery
from kombu import Queue

from ..core.config import get_settings
from ..core.constants import TASK_FAIL_STALE_JOBS, TASK_MERGE_UPLOAD, TASK_PROCESS_UPLOAD_CHUNK
from ..core.logging import get_logger

settings = get_settings()

broker_url = settings.celery.broker_url or settings.redis.build_url()
result_backend = settings.celery.result_backend or settings.redis.build_url()

# Create Celery instance
celery_app = Celery(
    "sdv_pipeline",
    broker=broker_url,
    backend=result_backend,
    include=[
        "sdv_pipeline.tasks.ingest_tasks",
        "sdv_pipeline.tasks.merge_tasks",
        "sdv_pipeline.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_routes={
        TASK_PROCESS_UPLOAD_CHUNK: {"queue": "ingest"},
        TASK_MERGE_UPLOAD: {"queue": "merge"},
        TASK_FAIL_STALE_JOBS: {"queue": "maintenance"},
    },
    task_queues=(
        Queue("ingest", routing_key="ingest"),
        Queue("merge", routing_key="merge"),
        Queue("maintenance", routing_key="maintenance"),
    ),

    task_serializer=settings.celery.task_serializer,
    accept_content=settings.celery.accept_content,
    result_serializer=settings.celery.result_serializer,
    timezone=settings.celery.timezone,
    enable_utc=settings.celery.enable_utc,

    result_expires=timedelta(days=1),

    # Chunk tasks must not be lost when a worker dies mid-chunk
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.celery.worker_concurrency,

    task_default_retry_delay=30,
    task_max_retries=3,

    worker_send_task_events=True,
    task_send_sent_event=True,
    worker_hijack_root_logger=False,
    broker_connection_retry_on_startup=True,
)

if settings.is_testing:
    celery_app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
        broker_url="memory://",
        result_backend="cache+memory://",
    )

if settings.pipeline.job_stale_after_seconds:
    celery_app.conf.beat_schedule = {
        "fail-stale-jobs": {
            "task": TASK_FAIL_STALE_JOBS,
            "schedule": timedelta(seconds=max(60, settings.pipeline.job_stale_after_seconds // 2)),
            "options": {"queue": "maintenance"},
        },
    }


class BaseTask(celery_app.Task):
    """Base task class with logging of the task lifecycle"""

    def on_success(self, retval, task_id, args, kwargs):
        logger = get_logger(self.name)
        logger.info(f"Task {self.name}[{task_id}] succeeded with result: {retval}")

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger = get_logger(self.name)
        logger.error(f"Task {self.name}[{task_id}] failed: {exc}")

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger = get_logger(self.name)
        logger.warning(f"Task {self.name}[{task_id}] retry: {exc}")
