from .uploads import (
    ChunkResult,
    IngestionResult,
    MergeAccepted,
    MergeRequest,
    MergeResult,
    UploadDeleted,
)
from .tracker import FilterOptions, HierarchyRow, KPISummary, SiteSummary

__all__ = [
    "ChunkResult",
    "IngestionResult",
    "MergeAccepted",
    "MergeRequest",
    "MergeResult",
    "UploadDeleted",
    "FilterOptions",
    "HierarchyRow",
    "KPISummary",
    "SiteSummary",
]
