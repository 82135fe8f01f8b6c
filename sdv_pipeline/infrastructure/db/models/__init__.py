from .base import BaseModel, TimestampMixin
from .upload_jobs import UploadJob, UploadJobCreate, UploadJobRead
from .sdv_uploads import SdvUpload, SdvUploadRead
from .raw_records import RawRecordBase, SiteDataEntryRecord, SdvDataRecord
from .query_records import QueryRecord
from .merged_records import MergedRecord, MergedRecordRead

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "UploadJob",
    "UploadJobCreate",
    "UploadJobRead",
    "SdvUpload",
    "SdvUploadRead",
    "RawRecordBase",
    "SiteDataEntryRecord",
    "SdvDataRecord",
    "QueryRecord",
    "MergedRecord",
    "MergedRecordRead",
]
