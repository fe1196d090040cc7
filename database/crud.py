"""
CRUD operations for materials, generation jobs and generated questions
All database operations go through these functions

Job status transitions are compare-and-swap UPDATEs (… WHERE status = <expected>);
a transition whose precondition no longer holds touches nothing and reports False.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from database import models
from database.models import JobStatus
from generation.errors import JobNotFoundError, JobStateError, MaterialNotFoundError

PROGRESS_STARTED = 10
PROGRESS_COMPLETED = 100
PROGRESS_FAILED = 0

CANCELLED_MESSAGE = "Cancelled by user"
RESET_MESSAGE = "Reset by administrator"


# ==========================================
# COURSE MATERIAL CRUD
# ==========================================

def create_material(db: Session, course_id: int, title: str, file_path: Optional[str] = None) -> models.CourseMaterial:
    """Register an uploaded material (not yet processed)"""
    db_material = models.CourseMaterial(course_id=course_id, title=title, file_path=file_path)
    db.add(db_material)
    db.commit()
    db.refresh(db_material)
    return db_material


def get_material(db: Session, material_id: int) -> Optional[models.CourseMaterial]:
    """Get material by ID"""
    return db.query(models.CourseMaterial).filter(models.CourseMaterial.id == material_id).first()


def get_materials(db: Session, course_id: Optional[int] = None, skip: int = 0, limit: int = 100) -> List[models.CourseMaterial]:
    query = db.query(models.CourseMaterial)
    if course_id is not None:
        query = query.filter(models.CourseMaterial.course_id == course_id)
    return query.order_by(models.CourseMaterial.id.desc()).offset(skip).limit(limit).all()


def save_material_structure(
    db: Session,
    material: models.CourseMaterial,
    document_title: str,
    full_text: str,
    sections_data: list,
    total_pages: int,
) -> models.CourseMaterial:
    """Cache a structuring result on the material and mark it processed"""
    material.document_title = document_title
    material.full_text = full_text
    material.sections_data = sections_data
    material.total_pages = total_pages
    material.is_processed = True
    db.commit()
    db.refresh(material)
    return material


# ==========================================
# GENERATION JOB CRUD
# ==========================================

def create_job(
    db: Session,
    material: models.CourseMaterial,
    requirement: dict,
    chunking_config: dict,
    total_requested: int,
    reset_from_job_id: Optional[int] = None,
) -> models.GenerationJob:
    """Create a PENDING job"""
    db_job = models.GenerationJob(
        course_id=material.course_id,
        material_id=material.id,
        status=JobStatus.PENDING,
        progress=0,
        processing_stage="QUEUED",
        requirement=requirement,
        chunking_config=chunking_config,
        total_requested=total_requested,
        reset_from_job_id=reset_from_job_id,
    )
    db.add(db_job)
    db.commit()
    db.refresh(db_job)
    return db_job


def get_job(db: Session, job_id: int) -> Optional[models.GenerationJob]:
    """Get job by ID (always re-read from the database)"""
    job = db.query(models.GenerationJob).filter(models.GenerationJob.id == job_id).first()
    if job is not None:
        db.refresh(job)
    return job


def get_jobs(
    db: Session,
    material_id: Optional[int] = None,
    course_id: Optional[int] = None,
    status: Optional[JobStatus] = None,
    skip: int = 0,
    limit: int = 50,
) -> List[models.GenerationJob]:
    """List jobs, newest first"""
    query = db.query(models.GenerationJob)
    if material_id is not None:
        query = query.filter(models.GenerationJob.material_id == material_id)
    if course_id is not None:
        query = query.filter(models.GenerationJob.course_id == course_id)
    if status is not None:
        query = query.filter(models.GenerationJob.status == status)
    return query.order_by(models.GenerationJob.id.desc()).offset(skip).limit(limit).all()


def _transition(db: Session, job_id: int, expected: Iterable[JobStatus], **values) -> bool:
    result = db.execute(
        update(models.GenerationJob)
        .where(models.GenerationJob.id == job_id)
        .where(models.GenerationJob.status.in_(list(expected)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def start_job(db: Session, job_id: int) -> bool:
    """PENDING → PROCESSING with a small non-zero progress. False if the job was not PENDING."""
    return _transition(
        db, job_id, [JobStatus.PENDING],
        status=JobStatus.PROCESSING,
        progress=PROGRESS_STARTED,
        processing_stage="PLANNING",
        error_message=None,
    )


def update_job_progress(db: Session, job_id: int, progress: int, **values) -> bool:
    """
    Raise progress (never lowers it) and set any extra columns on a PROCESSING job.
    False if the job is no longer PROCESSING (cancelled or reset meanwhile).
    """
    col = models.GenerationJob.progress
    return _transition(
        db, job_id, [JobStatus.PROCESSING],
        progress=case((col < progress, progress), else_=col),
        **values,
    )


def add_generated_questions(
    db: Session,
    job_id: int,
    material_id: int,
    course_id: int,
    chunk_id: str,
    items: Sequence,
) -> int:
    """
    Persist one work unit's questions and bump generated_count in the same
    transaction. Returns how many were written; 0 when the job is no longer
    PROCESSING (nothing is written then).
    """
    if not items:
        return 0
    result = db.execute(
        update(models.GenerationJob)
        .where(models.GenerationJob.id == job_id)
        .where(models.GenerationJob.status == JobStatus.PROCESSING)
        .values(generated_count=models.GenerationJob.generated_count + len(items))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return 0
    for item in items:
        db.add(models.GeneratedQuestion(
            job_id=job_id,
            material_id=material_id,
            course_id=course_id,
            chunk_id=chunk_id,
            question_text=item.question_text,
            answer_text=item.answer_text,
            difficulty=item.difficulty,
            bloom_level=item.bloom_level,
            marks=item.marks,
            topic=item.topic,
        ))
    db.commit()
    return len(items)


def complete_job(db: Session, job_id: int, generated_count: int, failed_units: int) -> bool:
    """PROCESSING → COMPLETED at 100%"""
    return _transition(
        db, job_id, [JobStatus.PROCESSING],
        status=JobStatus.COMPLETED,
        progress=PROGRESS_COMPLETED,
        processing_stage="COMPLETED",
        generated_count=generated_count,
        failed_units=failed_units,
        completed_at=func.now(),
    )


def fail_job(
    db: Session,
    job_id: int,
    error_message: str,
    expected: Tuple[JobStatus, ...] = (JobStatus.PENDING, JobStatus.PROCESSING),
    **values,
) -> bool:
    """Non-terminal → FAILED with progress reset to the failure sentinel"""
    return _transition(
        db, job_id, expected,
        status=JobStatus.FAILED,
        progress=PROGRESS_FAILED,
        processing_stage="FAILED",
        error_message=error_message[:2000],
        completed_at=func.now(),
        **values,
    )


def cancel_job(db: Session, job_id: int) -> models.GenerationJob:
    """
    Mark a PENDING or PROCESSING job FAILED ("Cancelled by user").
    In-flight generation calls finish, but the runner ignores their results.
    """
    job = get_job(db, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if not fail_job(db, job_id, CANCELLED_MESSAGE):
        job = get_job(db, job_id)
        raise JobStateError(job_id, job.status.value, "cancel")
    return get_job(db, job_id)


def reset_job(db: Session, job_id: int) -> models.GenerationJob:
    """
    Administrative reset: a stuck PROCESSING job is failed, and a fresh PENDING
    job with the same request is created (reset_from_job_id → old job).
    FAILED jobs can be reset too; PENDING and COMPLETED jobs cannot.
    """
    job = get_job(db, job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    if job.status == JobStatus.PROCESSING:
        if not fail_job(db, job_id, RESET_MESSAGE, expected=(JobStatus.PROCESSING,)):
            job = get_job(db, job_id)
            if job.status != JobStatus.FAILED:
                raise JobStateError(job_id, job.status.value, "reset")
    elif job.status != JobStatus.FAILED:
        raise JobStateError(job_id, job.status.value, "reset")

    material = get_material(db, job.material_id)
    if material is None:
        raise MaterialNotFoundError(job.material_id)
    return create_job(
        db,
        material,
        requirement=job.requirement,
        chunking_config=job.chunking_config,
        total_requested=job.total_requested,
        reset_from_job_id=job.id,
    )


def get_stuck_jobs(db: Session, older_than_minutes: int = 5) -> List[models.GenerationJob]:
    """PENDING/PROCESSING jobs whose record has not changed for the given time"""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
    return (
        db.query(models.GenerationJob)
        .filter(models.GenerationJob.status.in_([JobStatus.PENDING, JobStatus.PROCESSING]))
        .filter(models.GenerationJob.updated_at < cutoff)
        .order_by(models.GenerationJob.updated_at)
        .all()
    )


# ==========================================
# GENERATED QUESTION CRUD
# ==========================================

def get_job_questions(db: Session, job_id: int, page: int = 1, limit: int = 10) -> Tuple[List[models.GeneratedQuestion], dict]:
    """One page of a job's questions plus pagination info"""
    page = max(1, page)
    limit = max(1, limit)
    query = db.query(models.GeneratedQuestion).filter(models.GeneratedQuestion.job_id == job_id)
    total = query.count()
    questions = (
        query.order_by(models.GeneratedQuestion.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = math.ceil(total / limit) if total else 0
    pagination = {
        "current_page": page,
        "total_pages": total_pages,
        "total_count": total,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
    return questions, pagination
