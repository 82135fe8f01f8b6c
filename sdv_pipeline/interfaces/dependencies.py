from typing import AsyncIterator

from fastapi import Depends, Request
from sqlmodel import Session

from ..core.config import Settings, get_settings
from ..infrastructure.db.connection import database_manager
from ..infrastructure.messaging import JobEventPublisher, get_job_event_publisher
from ..infrastructure.storage import StorageBackend, get_storage
from ..services import IngestionService, MergeService, TrackerViewService, UploadJobService
from ..tasks.dispatch import CeleryTaskDispatcher, TaskDispatcher


async def get_db() -> AsyncIterator[Session]:
    """Database dependency"""
    with database_manager.get_session() as session:
        yield session


async def get_app_settings() -> Settings:
    return get_settings()


async def get_storage_backend() -> StorageBackend:
    return get_storage()


async def get_event_publisher() -> JobEventPublisher:
    return get_job_event_publisher()


async def get_task_dispatcher(request: Request) -> TaskDispatcher:
    """The dispatcher built at startup, or Celery when none was built."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    return dispatcher or CeleryTaskDispatcher()


async def get_job_service(
    db: Session = Depends(get_db),
    publisher: JobEventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_app_settings),
) -> UploadJobService:
    return UploadJobService(db, publisher=publisher, settings=settings)


async def get_ingestion_service(
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_backend),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
    publisher: JobEventPublisher = Depends(get_event_publisher),
    settings: Settings = Depends(get_app_settings),
) -> IngestionService:
    return IngestionService(db, storage, dispatcher, publisher=publisher, settings=settings)


async def get_merge_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> MergeService:
    return MergeService(db, settings=settings)


async def get_tracker_view_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> TrackerViewService:
    return TrackerViewService(db, settings=settings)
