from sdv_pipeline.core.enums import HierarchyLevel
from sdv_pipeline.transformers import (
    HierarchyBuilder,
    build_hierarchy,
    collapse_below,
    flatten_hierarchy,
)
from sdv_pipeline.transformers.hierarchy import COUNT_FIELDS


def record(site, subject, visit, crf, field, entered=1, verified=0, opened=0):
    return {
        "site_name": site,
        "subject_id": subject,
        "visit_type": visit,
        "crf_name": crf,
        "crf_field": field,
        "merge_key": f"{subject}|{visit}|{crf}|{field}",
        "data_entered": entered,
        "data_verified": verified,
        "data_expected": 1 - entered,
        "data_needing_review": entered - verified,
        "opened_queries": opened,
        "answered_queries": 0,
        "estimate_hours": round((entered - verified) / 60, 2),
        "estimate_days": round((entered - verified) / 60 / 7, 2),
        "sdv_percent": 100.0 if entered and verified else 0.0,
        "extra_fields": {"edit_by": "nurse"},
    }


RECORDS = [
    record("Site A", "101", "Screening", "Vitals", "HR", verified=1),
    record("Site A", "101", "Screening", "Vitals", "BP"),
    record("Site A", "101", "Week 1", "Vitals", "HR", verified=1, opened=2),
    record("Site A", "102", "Screening", "Demographics", "AGE", entered=0),
    record("Site B", "101", "Screening", "Vitals", "HR"),
    record("Site B", "103", "Screening", "Vitals", "HR", verified=1),
]


def walk(nodes):
    for node in nodes:
        yield node
        yield from walk(node.children)


def test_levels_and_grouping():
    sites = build_hierarchy(RECORDS)

    assert [site.label for site in sites] == ["Site A", "Site B"]
    site_a = sites[0]
    assert site_a.level == HierarchyLevel.SITE
    assert [subject.label for subject in site_a.children] == ["101", "102"]
    visit = site_a.children[0].children[0]
    assert visit.level == HierarchyLevel.VISIT
    crf = visit.children[0]
    assert crf.level == HierarchyLevel.CRF
    assert [leaf.label for leaf in crf.children] == ["HR", "BP"]
    assert crf.children[0].level == HierarchyLevel.FIELD
    assert crf.children[0].record["edit_by"] == "nurse"


def test_rollups_are_sums_of_children():
    for node in walk(build_hierarchy(RECORDS)):
        if not node.children:
            continue
        for name in COUNT_FIELDS:
            assert getattr(node, name) == sum(getattr(child, name) for child in node.children)
        expected = round(node.data_verified / node.data_entered * 100) if node.data_entered else 0
        assert node.sdv_percent == expected


def test_percentages_are_recomputed_not_averaged():
    site_a = build_hierarchy(RECORDS)[0]

    # 2 of 3 entered fields verified; averaging child percentages would give 50
    assert (site_a.data_entered, site_a.data_verified) == (3, 2)
    assert site_a.sdv_percent == 67
    assert site_a.opened_queries == 2


def test_node_ids_include_the_ancestor_path():
    sites = build_hierarchy(RECORDS)
    subject_ids = [subject.id for site in sites for subject in site.children]

    assert "subject-Site A-101" in subject_ids
    assert "subject-Site B-101" in subject_ids
    assert len(set(node.id for node in walk(sites))) == len(list(walk(sites)))


def test_missing_labels_fall_back_to_unknown():
    [site] = build_hierarchy([record("", None, " ", None, None)])

    subject = site.children[0]
    visit = subject.children[0]
    crf = visit.children[0]
    assert (site.label, subject.label, visit.label, crf.label, crf.children[0].label) == (
        "Unknown Site", "Unknown Subject", "Unknown Visit", "Unknown CRF", "Unknown Field",
    )


def test_flatten_shows_only_expanded_children():
    sites = build_hierarchy(RECORDS)

    rows = flatten_hierarchy(sites)
    assert [(row["label"], row["depth"]) for row in rows] == [("Site A", 0), ("Site B", 0)]
    assert all(row["hasChildren"] and not row["isExpanded"] for row in rows)

    rows = flatten_hierarchy(sites, {"site-Site A", "subject-Site A-102"})
    assert [(row["label"], row["depth"]) for row in rows] == [
        ("Site A", 0),
        ("101", 1),
        ("102", 1),
        ("Screening", 2),
        ("Site B", 0),
    ]
    assert rows[0]["isExpanded"] is True
    assert rows[1]["isExpanded"] is False


def test_expanded_set_wins_over_lazy_collapse():
    sites = build_hierarchy(RECORDS)
    trimmed = collapse_below(sites, 0)

    rows = flatten_hierarchy(trimmed, {"site-Site A"})

    # Children are not loaded yet, so none are listed
    assert [row["label"] for row in rows] == ["Site A", "Site B"]
    assert rows[0]["hasChildren"] is True
    assert rows[0]["isExpanded"] is True
    assert rows[1]["isExpanded"] is False
    assert trimmed[0].children == []
    # The original tree is left untouched
    assert sites[0].children


def test_find_returns_node_for_lazy_expansion():
    builder = HierarchyBuilder().extend(RECORDS)

    node = builder.find("visit-Site A-101-Screening")
    children = flatten_hierarchy(collapse_below(node.children, 0))

    assert [row["label"] for row in children] == ["Vitals"]
    assert children[0]["hasChildren"] is True
    assert children[0]["isExpanded"] is False
    assert builder.find("site-Nowhere") is None
