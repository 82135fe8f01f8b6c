import re

# Column headers as they appear on the second header row of each export
SITE_DATA_ENTRY_COLUMNS = [
    "SiteName",
    "SubjectId",
    "EventName",
    "FormName",
    "ItemId",
    "ItemExportLabel",
    "EditDateTime",
    "EditBy",
]

SDV_DATA_COLUMNS = [
    "SiteName",
    "SubjectId",
    "EventName",
    "FormName",
    "ItemId",
    "ItemName",
    "SdvBy",
    "SdvDate",
]

IDENTIFIER_COLUMN = "SubjectId"
MERGE_KEY_COLUMNS = ("SubjectId", "EventName", "FormName", "ItemId")
MERGE_KEY_SEPARATOR = "|"

HEADER_ROW_COUNT = 2
MIN_CSV_ROWS = HEADER_ROW_COUNT + 1

# Query tracker states counted by the merge
QUERY_STATE_RAISED = "Query Raised"
QUERY_STATE_RESOLVED = "Query Resolved"
QUERY_STATES = (
    "Query Approved",
    "Query Closed",
    QUERY_STATE_RESOLVED,
    QUERY_STATE_RAISED,
    "Query Removed",
    "Query Rejected",
)

UNKNOWN_SITE = "Unknown Site"
UNKNOWN_SUBJECT = "Unknown Subject"
UNKNOWN_VISIT = "Unknown Visit"
UNKNOWN_CRF = "Unknown CRF"
UNKNOWN_FIELD = "Unknown Field"

CHUNK_FILE_NAME_PATTERN = re.compile(r"[^a-zA-Z0-9.-]")
CHUNK_TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%f"

# Task names shared by the Celery and in-process dispatchers
TASK_PROCESS_UPLOAD_CHUNK = "process_upload_chunk"
TASK_MERGE_UPLOAD = "merge_upload"
TASK_FAIL_STALE_JOBS = "fail_stale_jobs"
