"""
Task bodies shared by the Celery tasks and the in-process dispatcher.

Each run opens its own database session. A publisher is created per run
unless one is passed in, because Redis clients are bound to the event loop
that created them and Celery tasks get a fresh loop every time.
"""

from functools import partial
from typing import Any, Dict, List, Optional
from uuid import UUID

from ..core.config import Settings, get_settings
from ..core.constants import TASK_MERGE_UPLOAD, TASK_PROCESS_UPLOAD_CHUNK
from ..core.logging import get_logger
from ..infrastructure.db import DatabaseManager, database_manager
from ..infrastructure.messaging import JobEventPublisher
from ..infrastructure.storage import StorageBackend, get_storage
from ..schemas import ChunkResult, MergeResult
from ..services import IngestionService, MergeService, UploadJobService
from .dispatch import AsyncioTaskDispatcher, CeleryTaskDispatcher, TaskDispatcher

logger = get_logger(__name__)


async def _open_publisher(publisher: Optional[JobEventPublisher], settings: Settings):
    if publisher is not None:
        return publisher, False
    publisher = JobEventPublisher(settings=settings)
    await publisher.connect()
    return publisher, True


async def run_chunk_task(
    payload: Dict[str, Any],
    db_manager: Optional[DatabaseManager] = None,
    storage: Optional[StorageBackend] = None,
    dispatcher: Optional[TaskDispatcher] = None,
    publisher: Optional[JobEventPublisher] = None,
    settings: Optional[Settings] = None,
) -> ChunkResult:
    settings = settings or get_settings()
    db_manager = db_manager or database_manager
    publisher, owned = await _open_publisher(publisher, settings)

    try:
        with db_manager.get_session() as session:
            service = IngestionService(
                session,
                storage or get_storage(),
                dispatcher or CeleryTaskDispatcher(),
                publisher=publisher,
                settings=settings,
            )
            return await service.process_chunk(
                job_id=UUID(str(payload["job_id"])),
                upload_id=UUID(str(payload["upload_id"])),
                chunk_number=int(payload["chunk_number"]),
                total_chunks=int(payload["total_chunks"]),
                path=payload["path"],
                job_type=payload["job_type"],
            )
    finally:
        if owned:
            await publisher.disconnect()


async def run_merge_task(
    payload: Dict[str, Any],
    db_manager: Optional[DatabaseManager] = None,
    settings: Optional[Settings] = None,
) -> MergeResult:
    db_manager = db_manager or database_manager
    with db_manager.get_session() as session:
        service = MergeService(session, settings=settings)
        return await service.merge(UUID(str(payload["primary_upload_id"])), payload["tenant_id"])


async def run_stale_sweep(
    older_than_seconds: int,
    db_manager: Optional[DatabaseManager] = None,
    publisher: Optional[JobEventPublisher] = None,
    settings: Optional[Settings] = None,
) -> List[UUID]:
    settings = settings or get_settings()
    db_manager = db_manager or database_manager
    publisher, owned = await _open_publisher(publisher, settings)

    try:
        with db_manager.get_session() as session:
            service = UploadJobService(session, publisher=publisher, settings=settings)
            return await service.fail_stale_jobs(older_than_seconds)
    finally:
        if owned:
            await publisher.disconnect()


def build_local_dispatcher(
    db_manager: Optional[DatabaseManager] = None,
    storage: Optional[StorageBackend] = None,
    publisher: Optional[JobEventPublisher] = None,
    settings: Optional[Settings] = None,
) -> AsyncioTaskDispatcher:
    """Dispatcher that runs chunk and merge tasks in the current event loop."""
    settings = settings or get_settings()
    dispatcher = AsyncioTaskDispatcher({}, concurrency=settings.pipeline.local_worker_concurrency)
    dispatcher.handlers.update({
        TASK_PROCESS_UPLOAD_CHUNK: partial(
            run_chunk_task,
            db_manager=db_manager,
            storage=storage,
            dispatcher=dispatcher,
            publisher=publisher,
            settings=settings,
        ),
        TASK_MERGE_UPLOAD: partial(run_merge_task, db_manager=db_manager, settings=settings),
    })
    return dispatcher


def build_dispatcher(
    db_manager: Optional[DatabaseManager] = None,
    storage: Optional[StorageBackend] = None,
    publisher: Optional[JobEventPublisher] = None,
    settings: Optional[Settings] = None,
) -> TaskDispatcher:
    """Celery unless PIPELINE_TASK_BACKEND=local or running under tests."""
    settings = settings or get_settings()
    if settings.pipeline.task_backend == "local" or settings.is_testing:
        logger.info("Using in-process task dispatcher")
        return build_local_dispatcher(db_manager, storage, publisher, settings)
    return CeleryTaskDispatcher()
