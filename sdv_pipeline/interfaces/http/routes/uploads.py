from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from ....core.constants import TASK_MERGE_UPLOAD
from ....core.enums import JobType
from ....core.exceptions import BadRequestError
from ....core.response import APIResponse
from ....infrastructure.db.models import SdvUploadRead
from ....schemas import IngestionResult, MergeAccepted, MergeRequest, MergeResult, UploadDeleted
from ....services import IngestionService, MergeService, TrackerViewService
from ....tasks.dispatch import TaskDispatcher
from ...dependencies import (
    get_ingestion_service,
    get_merge_service,
    get_task_dispatcher,
    get_tracker_view_service,
)

router = APIRouter()

ALLOWED_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "text/plain",
    "application/octet-stream",
}


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=APIResponse[IngestionResult])
async def upload_dataset(
    file: UploadFile = File(..., description="Two-header-row CSV export"),
    tenant_id: str = Form(..., min_length=1, max_length=64),
    job_type: JobType = Form(...),
    created_by: Optional[str] = Form(None, max_length=64),
    primary_upload_id: Optional[UUID] = Form(None, description="Site data entry upload an SDV data file verifies"),
    service: IngestionService = Depends(get_ingestion_service),
):
    """
    Start ingesting a CSV export.

    The file is validated and staged before this returns; chunk rows are
    stored in the background. Follow progress through the job endpoints.
    """
    if file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES:
        raise BadRequestError(
            f"File type {file.content_type} not supported",
            details={"allowed": sorted(ALLOWED_CONTENT_TYPES)},
        )

    content = await file.read()
    result = await service.ingest(
        tenant_id=tenant_id,
        created_by=created_by,
        job_type=job_type,
        file_name=file.filename or "upload.csv",
        content=content,
        primary_upload_id=primary_upload_id,
    )
    return APIResponse.ok("Upload accepted", result)


@router.get("", response_model=APIResponse[List[SdvUploadRead]])
async def list_uploads(
    tenant_id: str = Query(..., min_length=1),
    job_type: Optional[JobType] = Query(None),
    service: TrackerViewService = Depends(get_tracker_view_service),
):
    uploads = await service.list_uploads(tenant_id, job_type)
    return APIResponse.ok(
        f"{len(uploads)} uploads",
        [SdvUploadRead.model_validate(upload, from_attributes=True) for upload in uploads],
    )


@router.delete("/{upload_id}", response_model=APIResponse[UploadDeleted])
async def delete_upload(
    upload_id: UUID,
    tenant_id: str = Query(..., min_length=1),
    service: IngestionService = Depends(get_ingestion_service),
):
    deleted = await service.delete_upload(upload_id, tenant_id)
    return APIResponse.ok("Upload deleted", UploadDeleted(upload_id=upload_id, deleted_records=deleted))


@router.post("/{upload_id}/merge", status_code=status.HTTP_202_ACCEPTED)
async def trigger_merge(
    upload_id: UUID,
    request: MergeRequest,
    wait: bool = Query(False, description="Run the merge in this request instead of queueing it"),
    service: MergeService = Depends(get_merge_service),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
) -> APIResponse:
    """Rebuild merged records for a site data entry upload. Safe to repeat."""
    if wait:
        result: MergeResult = await service.merge(upload_id, request.tenant_id)
        return APIResponse.ok("Merge completed", result)

    await service.get_primary(upload_id, request.tenant_id)
    dispatcher.enqueue(TASK_MERGE_UPLOAD, {"primary_upload_id": str(upload_id), "tenant_id": request.tenant_id})
    return APIResponse.ok("Merge queued", MergeAccepted(upload_id=upload_id))
