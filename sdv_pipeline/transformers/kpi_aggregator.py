"""
Upload-level summaries over merged records, computed with pandas.
"""

from typing import Any, Dict, Iterable, List

import pandas as pd

from .sdv_metrics import EstimateSettings
from ..core.constants import UNKNOWN_SITE
from ..core.logging import get_logger
from ..utils.number_utils import percent, round_half_up

logger = get_logger(__name__)

COUNT_COLUMNS = [
    "data_entered",
    "data_verified",
    "data_expected",
    "data_needing_review",
    "opened_queries",
    "answered_queries",
]
ESTIMATE_COLUMNS = ["estimate_hours", "estimate_days"]
LABEL_COLUMNS = ["site_name", "subject_id", "visit_type", "crf_name"]


def _as_row(record: Any) -> Dict[str, Any]:
    if isinstance(record, dict):
        return record
    if hasattr(record, "model_dump"):
        return record.model_dump()
    return dict(record.__dict__)


def records_frame(records: Iterable[Any]) -> pd.DataFrame:
    """Frame with one row per merged record and every column the summaries use."""
    df = pd.DataFrame([_as_row(record) for record in records])

    for column in COUNT_COLUMNS + ESTIMATE_COLUMNS:
        if column not in df.columns:
            df[column] = 0
    for column in LABEL_COLUMNS:
        if column not in df.columns:
            df[column] = None

    df[COUNT_COLUMNS] = df[COUNT_COLUMNS].fillna(0).astype("int64")
    df[ESTIMATE_COLUMNS] = df[ESTIMATE_COLUMNS].fillna(0).astype("float64")
    return df


def _distinct(series: pd.Series) -> int:
    values = series.dropna().astype(str).str.strip()
    return int(values[values != ""].nunique())


def calculate_kpis(records: Iterable[Any], estimates: EstimateSettings = EstimateSettings()) -> Dict[str, Any]:
    df = records_frame(records)

    totals = {column: int(df[column].sum()) for column in COUNT_COLUMNS}
    entered = totals["data_entered"]
    verified = totals["data_verified"]
    needing = totals["data_needing_review"]
    hours_per_day = estimates.hours_per_day or 1

    return {
        "total_records": int(len(df)),
        "data_entered": entered,
        "data_verified": verified,
        "data_expected": totals["data_expected"],
        "data_needing_review": needing,
        "sdv_percent": percent(verified, entered, ndigits=2),
        "forms_expected": totals["data_expected"] + entered,
        "estimated_days_onsite": round_half_up(needing / estimates.minutes_per_review_item / hours_per_day),
        "total_sites": _distinct(df["site_name"]),
        "total_subjects": _distinct(df["subject_id"]),
        "opened_queries": totals["opened_queries"],
        "answered_queries": totals["answered_queries"],
    }


def summarize_sites(records: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    One rollup row per site, in order of first appearance.

    Counts are summed; the percentage is recomputed from the summed counts.
    """
    df = records_frame(records)
    if df.empty:
        return []

    labels = df["site_name"].fillna("").astype(str).str.strip()
    df["site_name"] = labels.where(labels != "", UNKNOWN_SITE)

    grouped = df.groupby("site_name", sort=False)
    summary = grouped[COUNT_COLUMNS + ESTIMATE_COLUMNS].sum()
    subjects = grouped["subject_id"].nunique()

    rows = []
    for site_name, values in summary.iterrows():
        entered = int(values["data_entered"])
        verified = int(values["data_verified"])
        row = {"site_name": site_name}
        row.update({column: int(values[column]) for column in COUNT_COLUMNS})
        row.update({column: round_half_up(float(values[column]), 2) for column in ESTIMATE_COLUMNS})
        row["sdv_percent"] = percent(verified, entered)
        row["total_subjects"] = int(subjects.loc[site_name])
        rows.append(row)

    logger.debug(f"Summarized {len(df)} records into {len(rows)} sites")
    return rows
