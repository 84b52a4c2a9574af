"""
Job orchestration service

Sole writer of AIJob / AIJobAttempt status. Creates and dedupes jobs,
hands them to the queue, and records every processing attempt.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import transaction
from app.exceptions import NotFound
from app.jobs.queue import JobQueue, job_queue
from app.models import AIJob, AIJobAttempt, JobStatus, JobType
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# Task entry points executed by the RQ workers
TASKS = {
    JobType.GENERATION: "app.jobs.tasks.run_generation_job",
    JobType.EVALUATION: "app.jobs.tasks.run_evaluation_job",
}


@dataclass
class JobLookup:
    """Outcome of create_or_find_job: the job, and whether this call created it"""
    created: bool
    job: AIJob


class JobService:
    """Creates, dedupes, advances and inspects AI jobs"""

    def __init__(self, queue: Optional[JobQueue] = None):
        self.queue = queue if queue is not None else job_queue

    def queue_name(self, job_type: JobType) -> str:
        if job_type == JobType.GENERATION:
            return settings.GENERATION_QUEUE
        return settings.EVALUATION_QUEUE

    def find_by_dedupe_key(self, db: Session, dedupe_key: str) -> Optional[AIJob]:
        return db.scalar(select(AIJob).where(AIJob.dedupe_key == dedupe_key))

    def create_or_find_job(
        self,
        db: Session,
        job_type: JobType,
        dedupe_key: str,
        payload: Dict[str, Any],
    ) -> JobLookup:
        """
        Insert a PENDING job, or return the one already holding dedupe_key

        Runs inside the caller's transaction and does not commit. A unique
        violation on dedupe_key means a concurrent caller won the insert; the
        existing row is re-read and returned with created=False.

        Args:
            db: Database session
            job_type: GENERATION or EVALUATION
            dedupe_key: Logical unit of work, e.g. "evaluation:<sessionId>"
            payload: Job input

        Returns:
            JobLookup(created, job)
        """
        existing = self.find_by_dedupe_key(db, dedupe_key)
        if existing:
            logger.info(f"Job already exists for {dedupe_key}: {existing.id} ({existing.status.value})")
            return JobLookup(created=False, job=existing)

        job = AIJob(
            type=job_type,
            status=JobStatus.PENDING,
            dedupe_key=dedupe_key,
            payload=payload,
            attempts=0,
        )

        try:
            with db.begin_nested():
                db.add(job)
        except IntegrityError:
            existing = self.find_by_dedupe_key(db, dedupe_key)
            if existing is None:
                raise
            logger.info(f"Lost job creation race for {dedupe_key}, using {existing.id}")
            return JobLookup(created=False, job=existing)

        logger.info(f"Created {job_type.value} job {job.id} for {dedupe_key}")
        return JobLookup(created=True, job=job)

    def enqueue(self, job: AIJob) -> bool:
        """Hand a job to its queue; the AIJob id is the queue idempotency key"""
        return self.queue.enqueue(
            self.queue_name(job.type),
            TASKS[job.type],
            {"job_id": str(job.id)},
            idempotency_key=str(job.id),
            max_attempts=settings.JOB_MAX_ATTEMPTS,
            initial_backoff_ms=settings.JOB_INITIAL_BACKOFF_MS,
        )

    def rearm_failed(self, db: Session, job: AIJob) -> bool:
        """
        Move a FAILED job back to PENDING so it can be enqueued again

        Conditional on the FAILED state, so concurrent callers re-arm it once.
        """
        result = db.execute(
            update(AIJob)
            .where(AIJob.id == job.id, AIJob.status == JobStatus.FAILED)
            .values(status=JobStatus.PENDING, error_message=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        rearmed = result.rowcount == 1
        if rearmed:
            logger.info(f"Re-armed failed job {job.id}")
        return rearmed

    def mark_processing(self, db: Session, job_id: UUID) -> AIJob:
        """
        Move a job to PROCESSING and count the attempt

        Called by a worker on dequeue, before any AI call. A COMPLETED job is
        left untouched so redeliveries are harmless.

        Raises:
            NotFound: no such job
        """
        result = db.execute(
            update(AIJob)
            .where(
                AIJob.id == job_id,
                AIJob.status.in_([JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.FAILED]),
            )
            .values(status=JobStatus.PROCESSING, attempts=AIJob.attempts + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()

        job = db.get(AIJob, job_id)
        if job is None:
            raise NotFound("Job not found")

        if result.rowcount == 0:
            logger.info(f"Job {job_id} is already {job.status.value}, processing mark skipped")
        else:
            logger.info(f"Job {job_id} processing (attempt {job.attempts})")
        return job

    def record_completion(self, db: Session, job_id: UUID, result: Dict[str, Any]) -> None:
        """Append the COMPLETED attempt and finish the job, in the caller's transaction"""
        job = self._get_for_update(db, job_id)
        attempt = max(job.attempts, 1)
        db.add(AIJobAttempt(job_id=job.id, attempt=attempt, status=JobStatus.COMPLETED))
        job.status = JobStatus.COMPLETED
        job.result = result
        job.error_message = None
        logger.info(f"Job {job_id} completed on attempt {attempt}")

    def mark_completed(self, db: Session, job_id: UUID, result: Dict[str, Any]) -> None:
        with transaction(db):
            self.record_completion(db, job_id, result)

    def mark_failed(self, db: Session, job_id: UUID, error: BaseException) -> None:
        """
        Append the FAILED attempt and record the error in one transaction

        A job that already completed keeps its COMPLETED status; the failed
        attempt is still recorded.
        """
        message = str(error) or type(error).__name__

        with transaction(db):
            job = self._get_for_update(db, job_id)
            attempt = max(job.attempts, 1)
            db.add(AIJobAttempt(job_id=job.id, attempt=attempt, status=JobStatus.FAILED, error=message))
            if job.status != JobStatus.COMPLETED:
                job.status = JobStatus.FAILED
                job.error_message = message

        logger.warning(f"Job {job_id} failed on attempt {attempt}: {message}")

    def get_job(self, db: Session, job_id: UUID) -> Optional[AIJob]:
        return db.get(AIJob, job_id)

    def requeue_stale_pending(self, db: Session, older_than: Optional[timedelta] = None) -> List[UUID]:
        """
        Re-enqueue PENDING jobs that never reached a worker

        Covers a crash between committing a job and enqueueing it. Jobs still
        present on the queue are skipped by the queue's idempotency key.

        Args:
            db: Database session
            older_than: Minimum age (default STALE_PENDING_JOB_MINUTES)

        Returns:
            Ids of jobs handed to the queue
        """
        age = older_than if older_than is not None else timedelta(minutes=settings.STALE_PENDING_JOB_MINUTES)
        cutoff = utcnow() - age

        stale = db.scalars(
            select(AIJob)
            .where(AIJob.status == JobStatus.PENDING, AIJob.created_at < cutoff)
            .order_by(AIJob.created_at)
        ).all()

        requeued = []
        for job in stale:
            if self.enqueue(job):
                requeued.append(job.id)

        logger.info(f"Reconciled {len(stale)} stale pending jobs, requeued {len(requeued)}")
        return requeued

    def _get_for_update(self, db: Session, job_id: UUID) -> AIJob:
        job = db.get(AIJob, job_id, populate_existing=True, with_for_update=True)
        if job is None:
            raise NotFound("Job not found")
        return job


# Global instance
job_service = JobService()
