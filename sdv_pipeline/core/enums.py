from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle of an upload job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobType(str, Enum):
    """Kind of dataset an upload carries."""
    SITE_DATA_ENTRY = "site_data_entry"
    SDV_DATA = "sdv_data"


class MergeStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class HierarchyLevel(str, Enum):
    SITE = "site"
    SUBJECT = "subject"
    VISIT = "visit"
    CRF = "crf"
    FIELD = "field"
