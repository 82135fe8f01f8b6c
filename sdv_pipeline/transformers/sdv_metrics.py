"""
Per-field verification metrics.

A field counts as entered when the site recorded an edit timestamp, and as
verified when the monitor recorded an SDV date.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from ..utils.number_utils import percent, round_half_up

DEFAULT_MINUTES_PER_REVIEW_ITEM = 60
DEFAULT_HOURS_PER_DAY = 7


@dataclass(frozen=True)
class EstimateSettings:
    """Throughput assumptions used to turn pending reviews into effort."""

    minutes_per_review_item: float = DEFAULT_MINUTES_PER_REVIEW_ITEM
    hours_per_day: float = DEFAULT_HOURS_PER_DAY

    @classmethod
    def from_settings(cls, pipeline_settings) -> "EstimateSettings":
        return cls(
            minutes_per_review_item=pipeline_settings.minutes_per_review_item,
            hours_per_day=pipeline_settings.hours_per_day,
        )


@dataclass(frozen=True)
class FieldMetrics:
    data_entered: int
    data_verified: int
    data_expected: int
    data_needing_review: int
    sdv_percent: float
    opened_queries: int
    answered_queries: int
    estimate_hours: float
    estimate_days: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def calculate_field_metrics(
    edit_date_time: Optional[str],
    sdv_date: Optional[str],
    opened_queries: int = 0,
    answered_queries: int = 0,
    estimates: EstimateSettings = EstimateSettings(),
) -> FieldMetrics:
    data_entered = 1 if _present(edit_date_time) else 0
    # Verification only counts for entered data; review cannot go negative
    data_verified = 1 if data_entered and _present(sdv_date) else 0
    data_expected = 1 - data_entered
    data_needing_review = data_entered - data_verified

    estimate_hours = data_needing_review / estimates.minutes_per_review_item
    estimate_days = estimate_hours / estimates.hours_per_day

    return FieldMetrics(
        data_entered=data_entered,
        data_verified=data_verified,
        data_expected=data_expected,
        data_needing_review=data_needing_review,
        sdv_percent=percent(data_verified, data_entered, ndigits=2),
        opened_queries=opened_queries,
        answered_queries=answered_queries,
        estimate_hours=round_half_up(estimate_hours, 2),
        estimate_days=round_half_up(estimate_days, 2),
    )
