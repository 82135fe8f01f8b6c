"""
Test configuration and fixtures.

Provides:
- In-memory SQLite DatabaseManager (StaticPool) with every table created
- Memory blob storage and an in-process task dispatcher
- Services wired to the same session, publisher and settings
- HTTPX AsyncClient over the FastAPI app with dependency overrides
"""
import os

os.environ.setdefault("ENVIRONMENT", "testing")

import csv
import io
from typing import Iterable, List, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from sdv_pipeline.core.config import PipelineSettings, Settings, StorageSettings
from sdv_pipeline.core.constants import SDV_DATA_COLUMNS, SITE_DATA_ENTRY_COLUMNS
from sdv_pipeline.infrastructure.db import DatabaseManager
from sdv_pipeline.infrastructure.messaging import JobEventPublisher
from sdv_pipeline.infrastructure.storage import MemoryStorage
from sdv_pipeline.interfaces import dependencies
from sdv_pipeline.main import create_application
from sdv_pipeline.services import IngestionService, MergeService, TrackerViewService, UploadJobService
from sdv_pipeline.tasks.runners import build_local_dispatcher

TENANT = "tenant-a"


def build_csv(columns: Sequence[str], rows: Iterable[Sequence[str]]) -> bytes:
    """Two-header-row export: human labels, machine names, then data."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([column.replace("Id", " ID") for column in columns])
    writer.writerow(columns)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue().encode("utf-8")


def entry_row(subject="S1", event="V1", form="F1", item="I1", edited="2024-01-05",
              site="Site A", label=None, edit_by="nurse") -> List[str]:
    return [site, subject, event, form, item, label or f"{form}.{item}", edited, edit_by]


def sdv_row(subject="S1", event="V1", form="F1", item="I1", sdv_date="2024-01-10",
            site="Site A", item_name=None, sdv_by="monitor") -> List[str]:
    return [site, subject, event, form, item, item_name or item, sdv_by, sdv_date]


def entry_csv(rows: Iterable[Sequence[str]]) -> bytes:
    return build_csv(SITE_DATA_ENTRY_COLUMNS, rows)


def sdv_csv(rows: Iterable[Sequence[str]]) -> bytes:
    return build_csv(SDV_DATA_COLUMNS, rows)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="testing",
        storage=StorageSettings(default_storage="memory"),
        pipeline=PipelineSettings(chunk_upload_retry_delay=0, auto_merge=True, task_backend="local"),
    )


@pytest.fixture
def db_manager():
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.drop_tables()
    manager.dispose()


@pytest.fixture
def session(db_manager):
    with db_manager.get_session() as session:
        yield session


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def publisher(settings) -> JobEventPublisher:
    return JobEventPublisher(redis_url=None, settings=settings)


@pytest.fixture
def events(publisher) -> list:
    received = []
    unsubscribe = publisher.subscribe(received.append)
    yield received
    unsubscribe()


@pytest.fixture
async def dispatcher(db_manager, storage, publisher, settings):
    dispatcher = build_local_dispatcher(db_manager, storage, publisher, settings)
    yield dispatcher
    await dispatcher.shutdown()


@pytest.fixture
def job_service(session, publisher, settings) -> UploadJobService:
    return UploadJobService(session, publisher=publisher, settings=settings)


@pytest.fixture
def ingestion_service(session, storage, dispatcher, publisher, settings) -> IngestionService:
    return IngestionService(session, storage, dispatcher, publisher=publisher, settings=settings)


@pytest.fixture
def merge_service(session, settings) -> MergeService:
    return MergeService(session, settings=settings)


@pytest.fixture
def view_service(session, settings) -> TrackerViewService:
    return TrackerViewService(session, settings=settings)


@pytest.fixture
def app(db_manager, storage, publisher, dispatcher, settings):
    application = create_application(settings)
    application.state.dispatcher = dispatcher

    async def override_get_db():
        with db_manager.get_session() as session:
            yield session

    async def override_storage():
        return storage

    async def override_publisher():
        return publisher

    async def override_settings():
        return settings

    async def override_dispatcher():
        return dispatcher

    application.dependency_overrides[dependencies.get_db] = override_get_db
    application.dependency_overrides[dependencies.get_storage_backend] = override_storage
    application.dependency_overrides[dependencies.get_event_publisher] = override_publisher
    application.dependency_overrides[dependencies.get_app_settings] = override_settings
    application.dependency_overrides[dependencies.get_task_dispatcher] = override_dispatcher
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
