#!/usr/bin/env python3
"""
Administrative recovery for generation jobs left PENDING/PROCESSING by a crash.

A job whose record has not changed for --minutes (default 5) is considered stuck.
It is marked FAILED; with --requeue a fresh PENDING job with the same request is
created for it, and --run also executes the new jobs in this process.

Usage (from the repository root):
  python -m scripts.reset_stuck_jobs                 # fail stuck jobs
  python -m scripts.reset_stuck_jobs --dry-run       # only list them
  python -m scripts.reset_stuck_jobs --requeue --run # fail, recreate and run
"""

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from database import crud
from database.database import SessionLocal
from database.models import JobStatus

STUCK_MESSAGE = "Job stuck for more than {minutes} minutes - reset by administrator"

log = logging.getLogger("generation.pipeline")


def reset_stuck_jobs(
    db: Session,
    minutes: int = 5,
    requeue: bool = False,
    dry_run: bool = False,
) -> List[Tuple[int, Optional[int]]]:
    """
    Returns (stuck_job_id, new_job_id) pairs; new_job_id is None unless requeued.
    """
    stuck = crud.get_stuck_jobs(db, older_than_minutes=minutes)
    print(f"Found {len(stuck)} stuck jobs (no update for {minutes}+ minutes)")
    results: List[Tuple[int, Optional[int]]] = []
    for job in stuck:
        print(f"  job {job.id}: {job.status.value} stage={job.processing_stage} progress={job.progress}%")
        if dry_run:
            continue
        failed = crud.fail_job(
            db, job.id, STUCK_MESSAGE.format(minutes=minutes),
            expected=(JobStatus.PENDING, JobStatus.PROCESSING),
        )
        if not failed:
            print(f"    skipped: job {job.id} finished meanwhile")
            continue
        new_id = None
        if requeue:
            new_job = crud.reset_job(db, job.id)
            new_id = new_job.id
            print(f"    requeued as job {new_id}")
        results.append((job.id, new_id))
    return results


def main(argv: Optional[List[str]] = None, session_factory=SessionLocal) -> int:
    parser = argparse.ArgumentParser(description="Fail (and optionally requeue) stuck generation jobs")
    parser.add_argument("--minutes", type=int, default=5, help="minutes without update before a job counts as stuck")
    parser.add_argument("--dry-run", action="store_true", help="list stuck jobs without changing them")
    parser.add_argument("--requeue", action="store_true", help="create a fresh PENDING job for each stuck job")
    parser.add_argument("--run", action="store_true", help="with --requeue: run the new jobs now")
    args = parser.parse_args(argv)

    db = session_factory()
    try:
        results = reset_stuck_jobs(db, minutes=args.minutes, requeue=args.requeue, dry_run=args.dry_run)
    finally:
        db.close()

    if args.run and args.requeue:
        from generation.job_runner import JobRunner

        runner = JobRunner(session_factory=session_factory)
        for _, new_id in results:
            status = asyncio.run(runner.run_job(new_id))
            print(f"  job {new_id}: {status.value}")
    print("Done")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")
    sys.exit(main())
