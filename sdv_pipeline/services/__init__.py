from .base import BaseService
from .upload_job_service import UploadJobService
from .ingestion_service import IngestionService, build_chunk_path, plan_chunks
from .merge_service import MergeService
from .tracker_view_service import TrackerViewService

__all__ = [
    "BaseService",
    "UploadJobService",
    "IngestionService",
    "build_chunk_path",
    "plan_chunks",
    "MergeService",
    "TrackerViewService",
]
