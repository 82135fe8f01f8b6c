from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ....core.response import APIResponse, Page
from ....infrastructure.db.models import MergedRecordRead
from ....schemas import FilterOptions, HierarchyRow, KPISummary, SiteSummary
from ....services import TrackerViewService
from ...dependencies import get_tracker_view_service

router = APIRouter()


def _filters(
    site: Optional[str] = Query(None),
    subject: Optional[str] = Query(None),
    visit: Optional[str] = Query(None),
    crf: Optional[str] = Query(None),
) -> Dict[str, Optional[str]]:
    return {"site": site, "subject": subject, "visit": visit, "crf": crf}


@router.get("/{upload_id}/hierarchy", response_model=APIResponse[List[HierarchyRow]])
async def get_hierarchy(
    upload_id: UUID,
    tenant_id: Optional[str] = Query(None),
    expanded: List[str] = Query(default=[], description="Ids of expanded nodes"),
    filters: Dict[str, Optional[str]] = Depends(_filters),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    rows = await service.get_hierarchy(upload_id, tenant_id, set(expanded), filters)
    return APIResponse.ok("Hierarchy", [HierarchyRow.model_validate(row) for row in rows])


@router.get("/{upload_id}/hierarchy/{node_id}/children", response_model=APIResponse[List[HierarchyRow]])
async def get_hierarchy_children(
    upload_id: UUID,
    node_id: str,
    tenant_id: Optional[str] = Query(None),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    rows = await service.get_children(upload_id, node_id, tenant_id)
    return APIResponse.ok("Children", [HierarchyRow.model_validate(row) for row in rows])


@router.get("/{upload_id}/kpis", response_model=APIResponse[KPISummary])
async def get_kpis(
    upload_id: UUID,
    tenant_id: Optional[str] = Query(None),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    return APIResponse.ok("KPIs", KPISummary(**await service.get_kpis(upload_id, tenant_id)))


@router.get("/{upload_id}/filters", response_model=APIResponse[FilterOptions])
async def get_filter_options(
    upload_id: UUID,
    tenant_id: Optional[str] = Query(None),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    return APIResponse.ok("Filter options", FilterOptions(**await service.get_filter_options(upload_id, tenant_id)))


@router.get("/{upload_id}/sites", response_model=APIResponse[List[SiteSummary]])
async def get_site_summary(
    upload_id: UUID,
    tenant_id: Optional[str] = Query(None),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    rows = await service.get_site_summary(upload_id, tenant_id)
    return APIResponse.ok("Site summary", [SiteSummary(**row) for row in rows])


@router.get("/{upload_id}/records", response_model=APIResponse[Page[MergedRecordRead]])
async def list_records(
    upload_id: UUID,
    tenant_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    filters: Dict[str, Optional[str]] = Depends(_filters),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    result = await service.list_records(upload_id, tenant_id, filters, page, page_size)
    return APIResponse.ok("Merged records", result)
