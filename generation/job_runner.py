"""
Generation Job Orchestrator

PENDING → PROCESSING → COMPLETED | FAILED

  1. start      compare-and-swap PENDING → PROCESSING, progress 10
                (a job in any other state is rejected and left untouched)
  2. plan       re-chunk the material's cached sections, distribute the quota,
                pair tiers into work units; progress 30
  3. generate   one model call per work unit, at most max_concurrency at a time,
                each bounded by unit_timeout; validated questions are written
                as soon as their unit returns; progress climbs 30 → 90
  4. finish     COMPLETED at 100 with the true generated_count, even when some
                units failed; FAILED (progress 0) when nothing was generated

Unit failures (provider error, timeout, unusable response) are logged, counted
in failed_units and skipped. Storage failures and anything unexpected fail the
whole job with the error captured. Writes to one job record are serialised by a
per-job asyncio.Lock; status changes are CAS updates, so a job cancelled or reset
elsewhere simply stops accepting writes from this runner.

Known gap: if the process dies mid-job the record stays PROCESSING. Recovery
is manual (POST /generation-jobs/{id}/reset or scripts/reset_stuck_jobs.py);
there is no automatic resume.
"""

import asyncio
import inspect
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import crud
from database.database import SessionLocal
from database.models import JobStatus
from ingestion.schemas import ChunkingConfig, ContentChunk, Section
from .errors import (
    GenerationError,
    GenerationUnitError,
    JobNotFoundError,
    JobStateError,
    MaterialNotFoundError,
    PersistenceError,
)
from .planner import build_plan
from .prompts import build_prompt
from .question_parser import parse_generated_questions
from .schemas import GenerationPlan, QuotaRequirement, WorkUnit

log = logging.getLogger("generation.pipeline")

# ─── Config ───────────────────────────────────────────────────────────────────

MAX_CONCURRENCY = int(os.getenv("GENERATION_MAX_CONCURRENCY", "3"))
MAX_CONCURRENT_JOBS = int(os.getenv("GENERATION_MAX_JOBS", "3"))
UNIT_TIMEOUT = float(os.getenv("GENERATION_UNIT_TIMEOUT", "60"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "4"))
RETRIEVAL_TIMEOUT = float(os.getenv("RETRIEVAL_TIMEOUT", "10"))

PROGRESS_WINDOW_START = 30
PROGRESS_WINDOW_END = 90

GenerateFn = Callable[[str], Awaitable[str]]
RetrieverFn = Callable[[str, Dict[str, Any], int], Any]


def window_progress(done: int, total: int) -> int:
    """Map units done onto the 30–90 window."""
    if total <= 0:
        return PROGRESS_WINDOW_END
    span = PROGRESS_WINDOW_END - PROGRESS_WINDOW_START
    return PROGRESS_WINDOW_START + (span * done) // total


def _is_async(fn) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


class JobLockRegistry:
    """One asyncio.Lock per job id; all writes to a job record go through it."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, job_id: int) -> asyncio.Lock:
        lock = self._locks.get(job_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[job_id] = lock
        return lock

    def release(self, job_id: int) -> None:
        self._locks.pop(job_id, None)

    def __contains__(self, job_id: int) -> bool:
        return job_id in self._locks


@dataclass
class _JobState:
    job_id: int
    material_id: int
    course_id: int
    total_units: int
    done: int = 0
    failed: int = 0
    generated: int = 0
    progress: int = PROGRESS_WINDOW_START
    stopped: bool = False


class JobRunner:
    """
    Runs generation jobs. Collaborators are injected:

        generate   async (prompt) -> raw model text
        retriever  (query, filters, top_k) -> passages, sync or async; optional.
                   Sync retrievers run in a worker thread. Either kind is bounded
                   by retrieval_timeout and falls back to the chunk text on failure.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        generate: Optional[GenerateFn] = None,
        retriever: Optional[RetrieverFn] = None,
        max_concurrency: int = MAX_CONCURRENCY,
        max_concurrent_jobs: int = MAX_CONCURRENT_JOBS,
        unit_timeout: float = UNIT_TIMEOUT,
        retrieval_top_k: int = RETRIEVAL_TOP_K,
        retrieval_timeout: float = RETRIEVAL_TIMEOUT,
        locks: Optional[JobLockRegistry] = None,
    ):
        if generate is None:
            from .gpt_client import call_gpt
            generate = call_gpt
        self.session_factory = session_factory
        self.generate = generate
        self.retriever = retriever
        self.max_concurrency = max(1, max_concurrency)
        self.max_concurrent_jobs = max(1, max_concurrent_jobs)
        self.unit_timeout = unit_timeout
        self.retrieval_top_k = retrieval_top_k
        self.retrieval_timeout = retrieval_timeout
        self.locks = locks or JobLockRegistry()
        self._job_slots: Optional[asyncio.Semaphore] = None
        self._job_slots_loop = None

    # ── helpers ───────────────────────────────────────────────────────────────

    def _slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._job_slots is None or self._job_slots_loop is not loop:
            self._job_slots = asyncio.Semaphore(self.max_concurrent_jobs)
            self._job_slots_loop = loop
        return self._job_slots

    @staticmethod
    def _db_call(db: Session, fn, *args, **kwargs):
        """Run a crud call; storage errors become PersistenceError."""
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"{fn.__name__} failed: {e}") from e

    # ── entry point ───────────────────────────────────────────────────────────

    async def run_job(self, job_id: int) -> JobStatus:
        """
        Drive one job to a terminal state and return that state.

        Raises:
            JobNotFoundError: no such job
            JobStateError:    job is not PENDING (record untouched)
        """
        async with self._slots():
            db = self.session_factory()
            try:
                return await self._run(db, job_id)
            finally:
                self.locks.release(job_id)
                db.close()

    async def _run(self, db: Session, job_id: int) -> JobStatus:
        if not self._db_call(db, crud.start_job, job_id):
            job = self._db_call(db, crud.get_job, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            log.warning(f"[JOB {job_id}] start rejected: status is {job.status.value}")
            raise JobStateError(job_id, job.status.value, "start")

        log.info(f"[JOB {job_id}] PROCESSING")
        try:
            job = self._db_call(db, crud.get_job, job_id)
            plan = self._plan(db, job)
            return await self._execute(db, job, plan)
        except (GenerationError, SQLAlchemyError) as e:
            log.error(f"[JOB {job_id}] FAILED: {e}")
            self._fail(db, job_id, str(e))
        except Exception as e:
            log.exception(f"[JOB {job_id}] FAILED with unexpected error")
            self._fail(db, job_id, f"Systemic failure: {type(e).__name__}: {e}")
        return JobStatus.FAILED

    def _fail(self, db: Session, job_id: int, message: str) -> None:
        try:
            db.rollback()
            crud.fail_job(db, job_id, message)
        except SQLAlchemyError:
            log.exception(f"[JOB {job_id}] could not record failure; job left PROCESSING")

    # ── planning ──────────────────────────────────────────────────────────────

    def _plan(self, db: Session, job) -> GenerationPlan:
        material = self._db_call(db, crud.get_material, job.material_id)
        if material is None:
            raise MaterialNotFoundError(job.material_id)
        sections = [Section(**s) for s in (material.sections_data or [])]
        requirement = QuotaRequirement(**job.requirement)
        config = ChunkingConfig(**(job.chunking_config or {}))

        plan = build_plan(sections, requirement, config)
        log.info(
            f"[JOB {job.id}] plan: {len(plan.chunks)} chunks, {len(plan.units)} units, "
            f"{plan.total_requested} questions"
        )
        self._db_call(
            db, crud.update_job_progress, job.id, PROGRESS_WINDOW_START,
            processing_stage="GENERATING",
            total_units=len(plan.units),
            total_requested=plan.total_requested,
        )
        return plan

    # ── generation ────────────────────────────────────────────────────────────

    async def _execute(self, db: Session, job, plan: GenerationPlan) -> JobStatus:
        state = _JobState(
            job_id=job.id,
            material_id=job.material_id,
            course_id=job.course_id,
            total_units=len(plan.units),
        )
        chunks = {c.id: c for c in plan.chunks}
        lock = self.locks.get(job.id)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(unit: WorkUnit) -> None:
            async with semaphore:
                await self._run_unit(db, state, lock, unit, chunks[unit.chunk_id])

        tasks = [asyncio.create_task(_bounded(u)) for u in plan.units]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        async with lock:
            if state.stopped:
                log.info(f"[JOB {job.id}] stopped early (cancelled or reset elsewhere)")
                current = self._db_call(db, crud.get_job, job.id)
                return current.status if current is not None else JobStatus.FAILED
            if state.generated == 0:
                message = f"No questions generated: all {state.total_units} work units failed"
                self._db_call(db, crud.fail_job, job.id, message, failed_units=state.failed)
                log.error(f"[JOB {job.id}] FAILED: {message}")
                return JobStatus.FAILED
            if not self._db_call(db, crud.complete_job, job.id, state.generated, state.failed):
                log.info(f"[JOB {job.id}] no longer PROCESSING, completion not recorded")
                return self._db_call(db, crud.get_job, job.id).status

        log.info(
            f"[JOB {job.id}] COMPLETED: {state.generated}/{plan.total_requested} questions, "
            f"{state.failed}/{state.total_units} units failed"
        )
        return JobStatus.COMPLETED

    async def _retrieve(self, chunk: ContentChunk, state: _JobState) -> List[str]:
        if self.retriever is None:
            return []
        query = " ".join([chunk.title, *chunk.metadata.topic_keywords])
        filters = {"material_id": state.material_id, "course_id": state.course_id}
        try:
            if _is_async(self.retriever):
                call = self.retriever(query, filters, self.retrieval_top_k)
            else:
                # sync retrievers (Qdrant + embeddings) block; keep them off the event loop
                call = asyncio.to_thread(self.retriever, query, filters, self.retrieval_top_k)
            passages = await asyncio.wait_for(call, timeout=self.retrieval_timeout)
            return [p for p in (passages or []) if isinstance(p, str)]
        except Exception as e:
            log.warning(f"[JOB {state.job_id}] retrieval failed for {chunk.id}, using chunk text only: {e}")
            return []

    async def _call_model(self, unit: WorkUnit, prompt: str) -> str:
        """Provider errors and timeouts fail the unit only."""
        try:
            return await asyncio.wait_for(self.generate(prompt), timeout=self.unit_timeout)
        except asyncio.TimeoutError as e:
            raise GenerationUnitError(unit.label, f"timed out after {self.unit_timeout}s") from e
        except Exception as e:
            raise GenerationUnitError(unit.label, f"{type(e).__name__}: {e}") from e

    async def _run_unit(self, db: Session, state: _JobState, lock: asyncio.Lock,
                        unit: WorkUnit, chunk: ContentChunk) -> None:
        if state.stopped:
            return
        items = []
        failed = False
        passages = await self._retrieve(chunk, state)
        prompt = build_prompt(unit, chunk, passages)
        try:
            items = parse_generated_questions(await self._call_model(unit, prompt), unit)
        except GenerationUnitError as e:
            failed = True
            log.warning(f"[UNIT {unit.label}] failed: {e.reason}")

        async with lock:
            if state.stopped:
                return
            if items:
                written = self._db_call(
                    db, crud.add_generated_questions,
                    state.job_id, state.material_id, state.course_id, unit.chunk_id, items,
                )
                if written == 0:
                    state.stopped = True
                    return
                state.generated += written
            state.done += 1
            if failed:
                state.failed += 1
            state.progress = max(state.progress, window_progress(state.done, state.total_units))
            still_running = self._db_call(
                db, crud.update_job_progress, state.job_id, state.progress,
                failed_units=state.failed,
            )
            if not still_running:
                state.stopped = True
                return
        log.info(
            f"[UNIT {unit.label}] {'failed' if failed else f'+{len(items)} questions'} "
            f"({state.done}/{state.total_units}, progress {state.progress}%)"
        )


async def dispatch_job(runner: JobRunner, job_id: int) -> None:
    """Background-task entry point: run the job, log what cannot be reported to a caller."""
    try:
        await runner.run_job(job_id)
    except GenerationError as e:
        log.warning(f"[JOB {job_id}] not run: {e}")
