"""
Generation Jobs Router — /generation-jobs

  POST /generation-jobs                  — submit; returns {job_id} immediately (202)
  GET  /generation-jobs                  — list jobs for a material / course
  GET  /generation-jobs/{id}             — poll: status, progress, counts, error
  GET  /generation-jobs/{id}/questions   — generated questions, paginated
  POST /generation-jobs/{id}/cancel      — mark a PENDING/PROCESSING job FAILED
  POST /generation-jobs/{id}/reset       — replace a stuck or failed job with a fresh PENDING one

Unsatisfiable requests (400) and unreadable materials (422) are rejected here,
before any job record exists. The job itself runs as a background task after
the response is sent.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.models import JobStatus
from embeddings.retrieval import RETRIEVAL_ENABLED, QdrantRetriever
from generation.errors import (
    ConfigurationError,
    ExtractionError,
    JobNotFoundError,
    JobStateError,
    MaterialNotFoundError,
)
from generation.job_runner import JobRunner, dispatch_job
from generation.planner import build_plan
from generation.schemas import (
    GeneratedQuestionResponse,
    GenerationJobAccepted,
    GenerationJobCreate,
    GenerationJobSnapshot,
    JobQuestionsResponse,
    PaginationInfo,
)
from ingestion.material_processor import process_material
from routers.materials import get_material_indexer

router = APIRouter(prefix="/generation-jobs", tags=["generation-jobs"])

log = logging.getLogger("generation.pipeline")

_runner: Optional[JobRunner] = None


def get_job_runner() -> JobRunner:
    """Process-wide runner (overridable in tests)."""
    global _runner
    if _runner is None:
        _runner = JobRunner(retriever=QdrantRetriever() if RETRIEVAL_ENABLED else None)
    return _runner


def _snapshot_or_404(db: Session, job_id: int) -> GenerationJobSnapshot:
    job = crud.get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Generation job {job_id} not found")
    return GenerationJobSnapshot.model_validate(job)


@router.post("", response_model=GenerationJobAccepted, status_code=status.HTTP_202_ACCEPTED)
def submit_generation_job(
    request: GenerationJobCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    runner: JobRunner = Depends(get_job_runner),
    indexer=Depends(get_material_indexer),
):
    """
    Create a PENDING job and hand it to the background runner.

    The request is planned first (chunk + distribute) so that a request that
    can never be satisfied fails here with 400 instead of as a FAILED job.
    """
    material = crud.get_material(db, request.source_material_id)
    if material is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(MaterialNotFoundError(request.source_material_id)),
        )

    try:
        document = process_material(db, material, indexer=indexer)
        plan = build_plan(document.sections, request.quota_requirement, request.chunking_config)
    except ExtractionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"{e}. Please re-upload.")
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    job = crud.create_job(
        db,
        material,
        requirement=request.quota_requirement.model_dump(),
        chunking_config=request.chunking_config.model_dump(),
        total_requested=plan.total_requested,
    )
    log.info(
        f"[SUBMIT] job {job.id} material={material.id} questions={plan.total_requested} "
        f"chunks={len(plan.chunks)} units={len(plan.units)}"
    )
    background_tasks.add_task(dispatch_job, runner, job.id)
    return GenerationJobAccepted(job_id=job.id, status=JobStatus.PENDING.value)


@router.get("", response_model=List[GenerationJobSnapshot])
def list_generation_jobs(
    material_id: Optional[int] = Query(None),
    course_id: Optional[int] = Query(None),
    status_filter: Optional[JobStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    jobs = crud.get_jobs(db, material_id=material_id, course_id=course_id, status=status_filter, skip=skip, limit=limit)
    return [GenerationJobSnapshot.model_validate(j) for j in jobs]


@router.get("/{job_id}", response_model=GenerationJobSnapshot)
def get_generation_job(job_id: int, db: Session = Depends(get_db)):
    return _snapshot_or_404(db, job_id)


@router.get("/{job_id}/questions", response_model=JobQuestionsResponse)
def get_generation_job_questions(
    job_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    _snapshot_or_404(db, job_id)
    questions, pagination = crud.get_job_questions(db, job_id, page=page, limit=limit)
    return JobQuestionsResponse(
        job_id=job_id,
        questions=[GeneratedQuestionResponse.model_validate(q) for q in questions],
        pagination=PaginationInfo(**pagination),
    )


@router.post("/{job_id}/cancel", response_model=GenerationJobSnapshot)
def cancel_generation_job(job_id: int, db: Session = Depends(get_db)):
    try:
        job = crud.cancel_job(db, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except JobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    log.info(f"[CANCEL] job {job_id} cancelled")
    return GenerationJobSnapshot.model_validate(job)


@router.post("/{job_id}/reset", response_model=GenerationJobAccepted, status_code=status.HTTP_202_ACCEPTED)
def reset_generation_job(
    job_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    runner: JobRunner = Depends(get_job_runner),
):
    """
    Administrative reset for a job stuck in PROCESSING (or one that FAILED).
    The old record is closed as FAILED; a new PENDING job with the same
    request starts from scratch.
    """
    try:
        new_job = crud.reset_job(db, job_id)
    except (JobNotFoundError, MaterialNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except JobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    log.info(f"[RESET] job {job_id} replaced by job {new_job.id}")
    background_tasks.add_task(dispatch_job, runner, new_job.id)
    return GenerationJobAccepted(job_id=new_job.id, status=JobStatus.PENDING.value)
