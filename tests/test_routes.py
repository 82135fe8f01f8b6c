import uuid

import pytest

from sdv_pipeline import main as main_module

from conftest import TENANT, entry_csv, entry_row, sdv_csv, sdv_row

API = "/api/v1"


def two_site_entries() -> bytes:
    return entry_csv([
        entry_row("101", "Screening", "Vitals", "HR", site="Site A"),
        entry_row("101", "Screening", "Vitals", "BP", site="Site A"),
        entry_row("102", "Screening", "Labs", "HB", edited="", site="Site A"),
        entry_row("201", "Week 1", "Vitals", "HR", site="Site B"),
    ])


async def upload(client, content, job_type="site_data_entry", **form):
    return await client.post(
        f"{API}/uploads",
        files={"file": ("export.csv", content, "text/csv")},
        data={"tenant_id": TENANT, "job_type": job_type, **form},
    )


@pytest.fixture
async def completed_upload(client, dispatcher):
    response = await upload(client, two_site_entries(), created_by="coordinator")
    assert response.status_code == 202
    await dispatcher.join()
    return response.json()["data"]


async def test_health(client, monkeypatch):
    monkeypatch.setattr(main_module.database_manager, "health_check", lambda: True)

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "healthy"


async def test_upload_runs_to_completion(client, dispatcher):
    response = await upload(client, two_site_entries())

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    assert body["data"]["total_records"] == 4

    await dispatcher.join()
    assert dispatcher.errors == []

    job = await client.get(f"{API}/jobs/{body['data']['job_id']}", params={"tenant_id": TENANT})
    assert job.status_code == 200
    assert job.json()["data"]["status"] == "completed"
    assert job.json()["data"]["progress"] == 100
    assert job.json()["data"]["processed_records"] == 4


async def test_upload_rejects_unsupported_content_type(client):
    response = await client.post(
        f"{API}/uploads",
        files={"file": ("photo.png", b"\x89PNG", "image/png")},
        data={"tenant_id": TENANT, "job_type": "site_data_entry"},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "BAD_REQUEST"


async def test_upload_with_wrong_headers_is_rejected(client):
    response = await upload(client, b"a,b,c\nx,y,z\n1,2,3\n")

    assert response.status_code == 422
    assert response.json()["success"] is False


async def test_unknown_job_uses_error_envelope(client):
    response = await client.get(f"{API}/jobs/{uuid.uuid4()}")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "NOT_FOUND"


async def test_job_lists(client, completed_upload):
    active = await client.get(f"{API}/jobs/active", params={"tenant_id": TENANT})
    history = await client.get(f"{API}/jobs/history", params={"tenant_id": TENANT, "limit": 5})

    assert active.json()["data"] == []
    assert [job["id"] for job in history.json()["data"]] == [completed_upload["job_id"]]


async def test_cancelling_finished_job_conflicts(client, completed_upload):
    response = await client.post(
        f"{API}/jobs/{completed_upload['job_id']}/cancel", params={"tenant_id": TENANT}
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_JOB_TRANSITION"


async def test_list_uploads(client, completed_upload):
    response = await client.get(f"{API}/uploads", params={"tenant_id": TENANT})

    uploads = response.json()["data"]
    assert [item["id"] for item in uploads] == [completed_upload["upload_id"]]
    assert uploads[0]["merge_status"] == "completed"
    assert uploads[0]["merged_record_count"] == 4


async def test_hierarchy_expands_on_request(client, completed_upload):
    upload_id = completed_upload["upload_id"]

    collapsed = await client.get(f"{API}/uploads/{upload_id}/hierarchy", params={"tenant_id": TENANT})
    rows = collapsed.json()["data"]
    assert [(row["label"], row["depth"]) for row in rows] == [("Site A", 0), ("Site B", 0)]
    assert all(row["hasChildren"] and not row["isExpanded"] for row in rows)

    expanded = await client.get(
        f"{API}/uploads/{upload_id}/hierarchy",
        params={"tenant_id": TENANT, "expanded": ["site-Site A"]},
    )
    labels = [row["label"] for row in expanded.json()["data"]]
    assert labels == ["Site A", "101", "102", "Site B"]


async def test_hierarchy_children(client, completed_upload):
    upload_id = completed_upload["upload_id"]

    response = await client.get(f"{API}/uploads/{upload_id}/hierarchy/subject-Site A-101/children")

    rows = response.json()["data"]
    assert [row["label"] for row in rows] == ["Screening"]
    assert rows[0]["hasChildren"] is True

    missing = await client.get(f"{API}/uploads/{upload_id}/hierarchy/site-Nowhere/children")
    assert missing.status_code == 404


async def test_kpis_filters_and_sites(client, completed_upload):
    upload_id = completed_upload["upload_id"]

    kpis = (await client.get(f"{API}/uploads/{upload_id}/kpis")).json()["data"]
    assert kpis["total_records"] == 4
    assert kpis["data_entered"] == 3
    assert kpis["data_verified"] == 0
    assert kpis["total_sites"] == 2

    filters = (await client.get(f"{API}/uploads/{upload_id}/filters")).json()["data"]
    assert filters["sites"] == ["Site A", "Site B"]
    assert filters["subjects"] == ["101", "102", "201"]

    sites = (await client.get(f"{API}/uploads/{upload_id}/sites")).json()["data"]
    assert [site["site_name"] for site in sites] == ["Site A", "Site B"]


async def test_records_are_paged_and_filtered(client, completed_upload):
    upload_id = completed_upload["upload_id"]

    first = await client.get(f"{API}/uploads/{upload_id}/records", params={"page_size": 3})
    page = first.json()["data"]
    assert page["total"] == 4
    assert page["total_pages"] == 2
    assert len(page["items"]) == 3

    site_b = await client.get(f"{API}/uploads/{upload_id}/records", params={"site": "Site B"})
    assert [item["subject_id"] for item in site_b.json()["data"]["items"]] == ["201"]


async def test_other_tenant_cannot_read_upload(client, completed_upload):
    response = await client.get(
        f"{API}/uploads/{completed_upload['upload_id']}/kpis", params={"tenant_id": "tenant-b"}
    )

    assert response.status_code == 404


async def test_sdv_upload_updates_verification(client, dispatcher, completed_upload):
    upload_id = completed_upload["upload_id"]

    response = await upload(
        client,
        sdv_csv([sdv_row("101", "Screening", "Vitals", "HR", site="Site A")]),
        job_type="sdv_data",
        primary_upload_id=upload_id,
    )
    assert response.status_code == 202
    await dispatcher.join()

    kpis = (await client.get(f"{API}/uploads/{upload_id}/kpis")).json()["data"]
    assert kpis["data_verified"] == 1


async def test_merge_now(client, completed_upload):
    upload_id = completed_upload["upload_id"]

    response = await client.post(
        f"{API}/uploads/{upload_id}/merge", params={"wait": True}, json={"tenant_id": TENANT}
    )

    assert response.status_code == 202
    assert response.json()["data"]["merged_records"] == 4


async def test_merge_queued(client, dispatcher, completed_upload):
    upload_id = completed_upload["upload_id"]

    response = await client.post(f"{API}/uploads/{upload_id}/merge", json={"tenant_id": TENANT})

    assert response.status_code == 202
    assert response.json()["data"]["queued"] is True
    await dispatcher.join()
    assert dispatcher.errors == []


async def test_merge_unknown_upload(client):
    response = await client.post(f"{API}/uploads/{uuid.uuid4()}/merge", json={"tenant_id": TENANT})

    assert response.status_code == 404


async def test_delete_upload(client, completed_upload):
    upload_id = completed_upload["upload_id"]

    response = await client.delete(f"{API}/uploads/{upload_id}", params={"tenant_id": TENANT})

    assert response.status_code == 200
    assert response.json()["data"]["deleted_records"] == {"raw_records": 4, "merged_records": 4}
    gone = await client.get(f"{API}/uploads/{upload_id}/kpis")
    assert gone.status_code == 404
