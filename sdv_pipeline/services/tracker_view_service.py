from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from sqlmodel import Session

from .base import BaseService
from ..core.config import Settings, get_settings
from ..core.exceptions import NotFoundError
from ..core.response import Page
from ..infrastructure.db.models import MergedRecord, MergedRecordRead, SdvUpload
from ..infrastructure.db.repositories import MergedRecordRepository, SdvUploadRepository
from ..infrastructure.db.repositories.merged_record_repository import FILTER_COLUMNS
from ..transformers import (
    EstimateSettings,
    HierarchyBuilder,
    HierarchyNode,
    build_hierarchy,
    calculate_kpis,
    collapse_below,
    flatten_hierarchy,
    summarize_sites,
)


class TrackerViewService(BaseService):
    """Read models over an upload's merged records. Never writes."""

    def __init__(self, db_session: Session, settings: Optional[Settings] = None):
        super().__init__(db_session)
        self.settings = settings or get_settings()
        self.uploads = SdvUploadRepository(db_session)
        self.merged = MergedRecordRepository(db_session)

    def get_service_name(self) -> str:
        return "TrackerViewService"

    async def _get_upload(self, upload_id: UUID, tenant_id: Optional[str]) -> SdvUpload:
        upload = await self.uploads.get(upload_id)
        if upload is None or (tenant_id is not None and upload.tenant_id != tenant_id):
            raise NotFoundError("SdvUpload", upload_id)
        return upload

    async def _records(self, upload_id: UUID, filters: Optional[Dict[str, Optional[str]]] = None) -> List[MergedRecord]:
        records: List[MergedRecord] = []
        async for page in self.merged.iter_upload(upload_id, filters, self.settings.pipeline.merge_page_size):
            records.extend(page)
        return records

    async def list_uploads(self, tenant_id: str, job_type=None) -> List[SdvUpload]:
        return await self.uploads.list_for_tenant(tenant_id, job_type)

    async def get_tree(
        self,
        upload_id: UUID,
        tenant_id: Optional[str] = None,
        filters: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[HierarchyNode]:
        await self._get_upload(upload_id, tenant_id)
        return build_hierarchy(await self._records(upload_id, filters))

    async def get_hierarchy(
        self,
        upload_id: UUID,
        tenant_id: Optional[str] = None,
        expanded_ids: Optional[Set[str]] = None,
        filters: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[Dict[str, Any]]:
        """Flattened rows of the tree, showing children only under expanded nodes."""
        tree = await self.get_tree(upload_id, tenant_id, filters)
        return flatten_hierarchy(tree, expanded_ids or set())

    async def get_children(
        self,
        upload_id: UUID,
        node_id: str,
        tenant_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Rows for one node's direct children, for lazy expansion.

        Grandchildren are not included; children that have them are flagged
        so the client can ask again.
        """
        await self._get_upload(upload_id, tenant_id)
        builder = HierarchyBuilder().extend(await self._records(upload_id))
        node = builder.find(node_id)
        if node is None:
            raise NotFoundError("HierarchyNode", node_id)
        return flatten_hierarchy(collapse_below(node.children, 0))

    async def get_kpis(self, upload_id: UUID, tenant_id: Optional[str] = None) -> Dict[str, Any]:
        await self._get_upload(upload_id, tenant_id)
        estimates = EstimateSettings.from_settings(self.settings.pipeline)
        return calculate_kpis(await self._records(upload_id), estimates)

    async def get_site_summary(self, upload_id: UUID, tenant_id: Optional[str] = None) -> List[Dict[str, Any]]:
        await self._get_upload(upload_id, tenant_id)
        return summarize_sites(await self._records(upload_id))

    async def get_filter_options(self, upload_id: UUID, tenant_id: Optional[str] = None) -> Dict[str, List[str]]:
        await self._get_upload(upload_id, tenant_id)
        return {
            f"{name}s": await self.merged.distinct_values(upload_id, name)
            for name in FILTER_COLUMNS
        }

    async def list_records(
        self,
        upload_id: UUID,
        tenant_id: Optional[str] = None,
        filters: Optional[Dict[str, Optional[str]]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page[MergedRecordRead]:
        await self._get_upload(upload_id, tenant_id)
        page_size = min(page_size or self.settings.default_page_size, self.settings.max_page_size)
        rows, total = await self.merged.list_page(upload_id, filters, page, page_size)
        return Page[MergedRecordRead](
            items=[MergedRecordRead.model_validate(row, from_attributes=True) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
        )
