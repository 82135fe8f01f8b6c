from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ....core.response import APIResponse
from ....infrastructure.db.models import UploadJobRead
from ....services import UploadJobService
from ...dependencies import get_job_service

router = APIRouter()


def _read(job) -> UploadJobRead:
    return UploadJobRead.model_validate(job, from_attributes=True)


@router.get("/active", response_model=APIResponse[List[UploadJobRead]])
async def list_active_jobs(
    tenant_id: str = Query(..., min_length=1, description="Owning tenant"),
    service: UploadJobService = Depends(get_job_service),
):
    """Jobs still pending or processing, newest first"""
    jobs = await service.get_active_jobs(tenant_id)
    return APIResponse.ok(f"{len(jobs)} active jobs", [_read(job) for job in jobs])


@router.get("/history", response_model=APIResponse[List[UploadJobRead]])
async def list_job_history(
    tenant_id: str = Query(..., min_length=1, description="Owning tenant"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Most recent N jobs"),
    service: UploadJobService = Depends(get_job_service),
):
    jobs = await service.get_job_history(tenant_id, limit)
    return APIResponse.ok("Job history", [_read(job) for job in jobs])


@router.get("/{job_id}", response_model=APIResponse[UploadJobRead])
async def get_job(
    job_id: UUID,
    tenant_id: Optional[str] = Query(None, description="Restrict lookup to this tenant"),
    service: UploadJobService = Depends(get_job_service),
):
    job = await service.get_job(job_id, tenant_id)
    return APIResponse.ok("Job found", _read(job))


@router.post("/{job_id}/cancel", response_model=APIResponse[UploadJobRead])
async def cancel_job(
    job_id: UUID,
    tenant_id: Optional[str] = Query(None, description="Restrict cancellation to this tenant"),
    service: UploadJobService = Depends(get_job_service),
):
    """Cancel a pending or processing job; chunks still queued are skipped."""
    await service.get_job(job_id, tenant_id)
    job = await service.cancel(job_id)
    return APIResponse.ok("Job cancelled", _read(job))
