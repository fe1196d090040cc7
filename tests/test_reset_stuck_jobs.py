from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from conftest import make_sections

from database import crud
from database.database import SessionLocal
from database.models import GenerationJob, JobStatus
from scripts.reset_stuck_jobs import main, reset_stuck_jobs

REQUIREMENT = {"difficulty": {"easy": 2}, "bloom_levels": {}}


def _age(db, job_id: int, minutes: int) -> None:
    db.execute(
        update(GenerationJob)
        .where(GenerationJob.id == job_id)
        .values(updated_at=datetime.now(timezone.utc) - timedelta(minutes=minutes))
    )
    db.commit()


@pytest.fixture()
def jobs(db, material_factory):
    material = material_factory(make_sections([400]))
    stuck = crud.create_job(db, material, REQUIREMENT, {}, total_requested=2)
    crud.start_job(db, stuck.id)
    fresh = crud.create_job(db, material, REQUIREMENT, {}, total_requested=2)
    done = crud.create_job(db, material, REQUIREMENT, {}, total_requested=2)
    crud.start_job(db, done.id)
    crud.complete_job(db, done.id, generated_count=2, failed_units=0)
    _age(db, stuck.id, 30)
    _age(db, done.id, 30)
    return stuck.id, fresh.id, done.id


def test_only_old_unfinished_jobs_are_stuck(db, jobs) -> None:
    stuck_id, _, _ = jobs

    assert [j.id for j in crud.get_stuck_jobs(db, older_than_minutes=5)] == [stuck_id]


def test_dry_run_changes_nothing(db, jobs) -> None:
    stuck_id, _, _ = jobs

    assert reset_stuck_jobs(db, minutes=5, dry_run=True) == []
    assert crud.get_job(db, stuck_id).status == JobStatus.PROCESSING


def test_stuck_job_is_failed_with_reason(db, jobs) -> None:
    stuck_id, fresh_id, done_id = jobs

    assert reset_stuck_jobs(db, minutes=5) == [(stuck_id, None)]

    stuck = crud.get_job(db, stuck_id)
    assert stuck.status == JobStatus.FAILED
    assert stuck.progress == 0
    assert stuck.error_message == "Job stuck for more than 5 minutes - reset by administrator"
    assert crud.get_job(db, fresh_id).status == JobStatus.PENDING
    assert crud.get_job(db, done_id).status == JobStatus.COMPLETED


def test_requeue_creates_linked_pending_job(db, jobs) -> None:
    stuck_id, _, _ = jobs

    [(old_id, new_id)] = reset_stuck_jobs(db, minutes=5, requeue=True)

    new = crud.get_job(db, new_id)
    assert old_id == stuck_id
    assert new.status == JobStatus.PENDING
    assert new.reset_from_job_id == stuck_id
    assert new.requirement == REQUIREMENT


def test_cli_dry_run(db, jobs, capsys) -> None:
    assert main(["--dry-run", "--minutes", "10"], session_factory=SessionLocal) == 0

    out = capsys.readouterr().out
    assert "Found 1 stuck jobs" in out
    assert crud.get_job(db, jobs[0]).status == JobStatus.PROCESSING
