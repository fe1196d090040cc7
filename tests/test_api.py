from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import make_sections
from test_extractor import SYLLABUS, make_pdf
from test_job_runner import FakeModel

from database import crud
from database.database import SessionLocal
from database.models import JobStatus
from generation.job_runner import JobRunner
from main import app
from routers.generation_jobs import get_job_runner

QUOTA = {
    "difficulty": {"easy": 2, "medium": 2},
    "bloom_levels": {"remember": 2, "understand": 2},
}
SMALL_CHUNKS = {"max_tokens_per_chunk": 200, "min_tokens_per_chunk": 50, "method": "by-heading"}


@pytest.fixture()
def model() -> FakeModel:
    return FakeModel()


@pytest.fixture()
def client(db, model):
    runner = JobRunner(session_factory=SessionLocal, generate=model)
    app.dependency_overrides[get_job_runner] = lambda: runner
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def material(material_factory):
    return material_factory(make_sections([900, 600, 1200]))


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "healthy"


# ─── Materials ────────────────────────────────────────────────────────────────

def test_upload_structures_the_pdf(client) -> None:
    response = client.post(
        "/materials/upload",
        data={"course_id": "3"},
        files={"file": ("os-syllabus.pdf", make_pdf(SYLLABUS), "application/pdf")},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["is_processed"] is True
    assert body["document_title"] == "Operating Systems"
    assert body["section_count"] == 3

    structure = client.get(f"/materials/{body['id']}/structure").json()
    assert [s["title"] for s in structure["sections"]] == ["Operating Systems", "Processes", "Memory"]


def test_upload_rejects_non_pdf(client) -> None:
    response = client.post(
        "/materials/upload",
        data={"course_id": "3"},
        files={"file": ("notes.txt", b"plain text", "text/plain")},
    )

    assert response.status_code == 400


def test_upload_of_unreadable_pdf_is_422_and_not_stored(client) -> None:
    response = client.post(
        "/materials/upload",
        data={"course_id": "3"},
        files={"file": ("broken.pdf", b"not really a pdf", "application/pdf")},
    )

    assert response.status_code == 422
    assert "re-upload" in response.json()["detail"]
    assert client.get("/materials").json() == []


def test_plan_preview_distributes_exactly(client, material) -> None:
    response = client.post(
        f"/materials/{material.id}/plan",
        json={"quota_requirement": QUOTA, "chunking_config": SMALL_CHUNKS},
    )

    assert response.status_code == 200
    body = response.json()
    assert len(body["chunks"]) > 1
    assert all(c["tokens"] <= 200 for c in body["chunks"])
    assert sum(q["difficulty"]["easy"] for q in body["quotas"]) == 2
    assert sum(q["bloom_levels"]["understand"] for q in body["quotas"]) == 2


def test_plan_preview_rejects_empty_request(client, material) -> None:
    response = client.post(f"/materials/{material.id}/plan", json={"quota_requirement": {}})

    assert response.status_code == 400


# ─── Generation jobs ──────────────────────────────────────────────────────────

def test_submit_then_poll_until_completed(client, material, model) -> None:
    response = client.post(
        "/generation-jobs",
        json={"source_material_id": material.id, "quota_requirement": QUOTA, "chunking_config": SMALL_CHUNKS},
    )

    assert response.status_code == 202
    accepted = response.json()
    assert accepted["status"] == "PENDING"

    job = client.get(f"/generation-jobs/{accepted['job_id']}").json()
    assert job["status"] == "COMPLETED"
    assert job["progress"] == 100
    assert job["generated_count"] == job["total_requested"] > 0
    assert job["total_units"] == len(model.prompts)

    page = client.get(f"/generation-jobs/{accepted['job_id']}/questions", params={"limit": 2}).json()
    assert len(page["questions"]) == 2
    assert page["pagination"]["total_count"] == job["generated_count"]
    assert page["pagination"]["has_next"] is True
    assert page["pagination"]["has_prev"] is False

    listed = client.get("/generation-jobs", params={"material_id": material.id, "status": "COMPLETED"}).json()
    assert [j["id"] for j in listed] == [accepted["job_id"]]


def test_submit_unknown_material_is_404(client) -> None:
    response = client.post("/generation-jobs", json={"source_material_id": 999, "quota_requirement": QUOTA})

    assert response.status_code == 404


def test_submit_zero_questions_is_400_and_creates_no_job(client, material, db) -> None:
    response = client.post(
        "/generation-jobs",
        json={"source_material_id": material.id, "quota_requirement": {"difficulty": {"easy": 0}}},
    )

    assert response.status_code == 400
    assert crud.get_jobs(db) == []


def test_submit_invalid_tier_is_422(client, material) -> None:
    response = client.post(
        "/generation-jobs",
        json={"source_material_id": material.id, "quota_requirement": {"difficulty": {"impossible": 1}}},
    )

    assert response.status_code == 422


def test_submit_for_material_without_file_is_422(client, db) -> None:
    material = crud.create_material(db, course_id=1, title="Never uploaded")

    response = client.post(
        "/generation-jobs",
        json={"source_material_id": material.id, "quota_requirement": QUOTA},
    )

    assert response.status_code == 422


def test_unknown_job_is_404(client) -> None:
    assert client.get("/generation-jobs/12345").status_code == 404
    assert client.get("/generation-jobs/12345/questions").status_code == 404
    assert client.post("/generation-jobs/12345/cancel").status_code == 404


def test_cancel_pending_job_then_conflict(client, material, db) -> None:
    job = crud.create_job(db, material, requirement=QUOTA, chunking_config=SMALL_CHUNKS, total_requested=4)

    response = client.post(f"/generation-jobs/{job.id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "FAILED"
    assert response.json()["error_message"] == crud.CANCELLED_MESSAGE
    assert client.post(f"/generation-jobs/{job.id}/cancel").status_code == 409


def test_reset_stuck_job_creates_and_runs_replacement(client, material, db) -> None:
    job = crud.create_job(db, material, requirement=QUOTA, chunking_config=SMALL_CHUNKS, total_requested=4)
    assert crud.start_job(db, job.id)

    response = client.post(f"/generation-jobs/{job.id}/reset")

    assert response.status_code == 202
    new_id = response.json()["job_id"]
    assert new_id != job.id

    old = client.get(f"/generation-jobs/{job.id}").json()
    assert old["status"] == "FAILED"
    assert old["error_message"] == crud.RESET_MESSAGE

    new = client.get(f"/generation-jobs/{new_id}").json()
    assert new["reset_from_job_id"] == job.id
    assert new["status"] == JobStatus.COMPLETED.value


def test_reset_of_completed_job_is_conflict(client, material) -> None:
    submitted = client.post(
        "/generation-jobs",
        json={"source_material_id": material.id, "quota_requirement": QUOTA},
    ).json()

    assert client.post(f"/generation-jobs/{submitted['job_id']}/reset").status_code == 409
