from .sdv_metrics import EstimateSettings, FieldMetrics, calculate_field_metrics
from .hierarchy import (
    HierarchyBuilder,
    HierarchyNode,
    build_hierarchy,
    collapse_below,
    flatten_hierarchy,
)
from .kpi_aggregator import calculate_kpis, records_frame, summarize_sites

__all__ = [
    "EstimateSettings",
    "FieldMetrics",
    "calculate_field_metrics",
    "HierarchyBuilder",
    "HierarchyNode",
    "build_hierarchy",
    "collapse_below",
    "flatten_hierarchy",
    "calculate_kpis",
    "records_frame",
    "summarize_sites",
]
