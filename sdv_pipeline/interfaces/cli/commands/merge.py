"""
Rebuild the merged records of a site data entry upload
"""

import asyncio
from uuid import UUID

from .base import BaseCommand
from ....core.exceptions import AppException
from ....core.logging import setup_logging
from ....infrastructure.db.connection import database_manager
from ....services import MergeService


class Command(BaseCommand):
    description = "Merge a site data entry upload with its SDV data and queries"

    def add_arguments(self, parser):
        parser.add_argument("upload_id", help="Site data entry upload id")
        parser.add_argument("--tenant", required=True, help="Owning tenant id")

    def handle(self, **kwargs):
        setup_logging()
        try:
            result = asyncio.run(self._merge(UUID(kwargs["upload_id"]), kwargs["tenant"]))
        except AppException as e:
            self.print_error(f"{e.error_code}: {e.message}")
            return 1

        self.print_success(f"Merged {result.merged_records} records for upload {result.upload_id}")
        return 0

    async def _merge(self, upload_id: UUID, tenant_id: str):
        with database_manager.get_session() as session:
            return await MergeService(session).merge(upload_id, tenant_id)
