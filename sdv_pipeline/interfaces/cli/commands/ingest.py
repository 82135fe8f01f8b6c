"""
Ingest a CSV export from disk and wait for it to finish
"""

import asyncio
from pathlib import Path
from uuid import UUID

from .base import BaseCommand
from ....core.config import get_settings
from ....core.enums import JobStatus, JobType
from ....core.exceptions import AppException
from ....core.logging import setup_logging
from ....infrastructure.db.connection import database_manager
from ....infrastructure.db.models import UploadJobRead
from ....infrastructure.messaging import JobEventPublisher
from ....infrastructure.storage import get_storage
from ....services import IngestionService, UploadJobService
from ....tasks.runners import build_local_dispatcher


class Command(BaseCommand):
    description = "Ingest a CSV file in-process (chunks, rows and merge)"

    def add_arguments(self, parser):
        parser.add_argument("file", help="Path to the CSV export")
        parser.add_argument("--tenant", required=True, help="Owning tenant id")
        parser.add_argument(
            "--job-type",
            dest="job_type",
            choices=[job_type.value for job_type in JobType],
            required=True,
        )
        parser.add_argument("--primary", default=None, help="Site data entry upload id for SDV data files")
        parser.add_argument("--created-by", default="cli")

    def handle(self, **kwargs):
        path = Path(kwargs["file"])
        if not path.is_file():
            self.print_error(f"File not found: {path}")
            return 1

        setup_logging()
        database_manager.create_tables()
        try:
            job = asyncio.run(self._ingest(path, kwargs))
        except AppException as e:
            self.print_error(f"{e.error_code}: {e.message}")
            return 1

        if job.status == JobStatus.COMPLETED:
            self.print_success(f"Job {job.id} completed: {job.processed_records}/{job.total_records} records")
            return 0
        self.print_error(f"Job {job.id} {job.status.value}: {job.error_message}")
        return 1

    async def _ingest(self, path: Path, kwargs):
        settings = get_settings()
        publisher = JobEventPublisher(settings=settings)
        await publisher.connect()
        publisher.subscribe(
            lambda event: self.print_info(f"{event.event_type.value}: {event.progress}% ({event.status})")
        )
        dispatcher = build_local_dispatcher(database_manager, get_storage(), publisher, settings)

        try:
            with database_manager.get_session() as session:
                service = IngestionService(session, get_storage(), dispatcher, publisher=publisher, settings=settings)
                result = await service.ingest(
                    tenant_id=kwargs["tenant"],
                    created_by=kwargs["created_by"],
                    job_type=JobType(kwargs["job_type"]),
                    file_name=path.name,
                    content=path.read_bytes(),
                    primary_upload_id=UUID(kwargs["primary"]) if kwargs["primary"] else None,
                )
                self.print_info(
                    f"Upload {result.upload_id}: {result.total_records} records in {result.total_chunks} chunks"
                )

            await dispatcher.join()

            with database_manager.get_session() as session:
                job = await UploadJobService(session, settings=settings).get_job(result.job_id)
                return UploadJobRead.model_validate(job, from_attributes=True)
        finally:
            await dispatcher.shutdown()
            await publisher.disconnect()
