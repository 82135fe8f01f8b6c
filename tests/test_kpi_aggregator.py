import pytest

from sdv_pipeline.transformers import EstimateSettings, calculate_field_metrics, calculate_kpis, summarize_sites

from test_hierarchy import RECORDS, record


@pytest.mark.parametrize(
    "edited, sdv_date, expected",
    [
        ("2024-01-05", None, (1, 0, 0, 1, 0)),
        ("2024-01-05", "2024-01-10", (1, 1, 0, 0, 100)),
        ("", "2024-01-10", (0, 0, 1, 0, 0)),
        (None, None, (0, 0, 1, 0, 0)),
    ],
)
def test_field_metrics(edited, sdv_date, expected):
    metrics = calculate_field_metrics(edited, sdv_date)

    assert (
        metrics.data_entered,
        metrics.data_verified,
        metrics.data_expected,
        metrics.data_needing_review,
        metrics.sdv_percent,
    ) == expected


def test_field_estimates_follow_throughput_settings():
    metrics = calculate_field_metrics("2024-01-05", None, estimates=EstimateSettings(30, 8))

    assert metrics.estimate_hours == 0.03
    assert metrics.estimate_days == 0.0


def test_kpis():
    kpis = calculate_kpis(RECORDS)

    assert kpis["total_records"] == 6
    assert kpis["data_entered"] == 5
    assert kpis["data_verified"] == 3
    assert kpis["data_expected"] == 1
    assert kpis["data_needing_review"] == 2
    assert kpis["sdv_percent"] == 60.0
    assert kpis["forms_expected"] == 6
    assert kpis["total_sites"] == 2
    assert kpis["total_subjects"] == 3
    assert kpis["opened_queries"] == 2
    assert kpis["estimated_days_onsite"] == 0


def test_estimated_days_onsite_rounds_half_up():
    records = [record("Site A", str(n), "V1", "F1", "I1") for n in range(630)]

    # 630 fields / 60 per hour / 7 hours per day = 1.5 days
    assert calculate_kpis(records)["estimated_days_onsite"] == 2


def test_kpis_of_empty_upload():
    kpis = calculate_kpis([])

    assert kpis["total_records"] == 0
    assert kpis["sdv_percent"] == 0
    assert kpis["total_sites"] == 0


def test_site_summary():
    rows = summarize_sites(RECORDS + [record(None, "104", "V1", "F1", "I1")])

    assert [row["site_name"] for row in rows] == ["Site A", "Site B", "Unknown Site"]
    site_a = rows[0]
    assert site_a["data_entered"] == 3
    assert site_a["data_verified"] == 2
    assert site_a["sdv_percent"] == 67
    assert site_a["total_subjects"] == 2
    assert site_a["estimate_hours"] == 0.02
