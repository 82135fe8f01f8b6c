from .base import BaseRepository
from .upload_job_repository import UploadJobRepository
from .sdv_upload_repository import SdvUploadRepository
from .raw_record_repository import RawRecordRepository
from .query_record_repository import QueryRecordRepository
from .merged_record_repository import MergedRecordRepository

__all__ = [
    "BaseRepository",
    "UploadJobRepository",
    "SdvUploadRepository",
    "RawRecordRepository",
    "QueryRecordRepository",
    "MergedRecordRepository",
]
