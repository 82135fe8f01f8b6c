from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HierarchyRow(BaseModel):
    """One visible row of the flattened Site > Subject > Visit > CRF > Field tree."""
    id: str
    level: str
    label: str
    depth: int
    has_children: bool = Field(alias="hasChildren")
    is_expanded: bool = Field(alias="isExpanded")
    data_verified: int = 0
    data_entered: int = 0
    data_needing_review: int = 0
    data_expected: int = 0
    opened_queries: int = 0
    answered_queries: int = 0
    estimate_hours: float = 0
    estimate_days: float = 0
    sdv_percent: float = 0
    record: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


class KPISummary(BaseModel):
    total_records: int = 0
    data_entered: int = 0
    data_verified: int = 0
    data_expected: int = 0
    data_needing_review: int = 0
    sdv_percent: float = 0
    forms_expected: int = 0
    estimated_days_onsite: int = 0
    total_sites: int = 0
    total_subjects: int = 0
    opened_queries: int = 0
    answered_queries: int = 0


class FilterOptions(BaseModel):
    sites: List[str] = []
    subjects: List[str] = []
    visits: List[str] = []
    crfs: List[str] = []


class SiteSummary(BaseModel):
    site_name: str
    total_subjects: int = 0
    data_entered: int = 0
    data_verified: int = 0
    data_expected: int = 0
    data_needing_review: int = 0
    opened_queries: int = 0
    answered_queries: int = 0
    estimate_hours: float = 0
    estimate_days: float = 0
    sdv_percent: float = 0
