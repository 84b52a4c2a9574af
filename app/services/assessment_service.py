"""
Assessment generation trigger and lookup

Generation is content-addressed: the fingerprint of the current syllabus
set names both the Assessment (syllabus_hash) and its job
(generation:<hash>), so an unchanged syllabus set is never generated twice.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import NotFound, ValidationFailed
from app.models import AIJob, Assessment, JobStatus, JobType, Syllabus
from app.services.job_service import JobService, job_service
from app.utils.hashing import syllabus_fingerprint

logger = logging.getLogger(__name__)


@dataclass
class GenerationTrigger:
    job_id: UUID
    status: JobStatus


def generation_dedupe_key(syllabus_hash: str) -> str:
    return f"generation:{syllabus_hash}"


class AssessmentService:
    """Admin-facing generation trigger and assessment reads"""

    def __init__(self, jobs: Optional[JobService] = None):
        self.jobs = jobs if jobs is not None else job_service

    def current_fingerprint(self, db: Session) -> Optional[str]:
        """Fingerprint of all stored syllabi, or None when there are none"""
        rows = db.execute(select(Syllabus.subject_name, Syllabus.raw_text)).all()
        if not rows:
            return None
        return syllabus_fingerprint((row.subject_name, row.raw_text) for row in rows)

    def trigger_generation(self, db: Session) -> GenerationTrigger:
        """
        Start (or converge on) generation for the current syllabus set

        - Assessment already stored: return its COMPLETED generation job
        - Job already exists: return it; a FAILED one is re-armed and enqueued
        - Otherwise create a PENDING job and enqueue it

        Raises:
            ValidationFailed: no syllabus on file
        """
        syllabus_hash = self.current_fingerprint(db)
        if syllabus_hash is None:
            raise ValidationFailed("No syllabus uploaded")

        dedupe_key = generation_dedupe_key(syllabus_hash)

        existing_assessment = db.scalar(select(Assessment).where(Assessment.syllabus_hash == syllabus_hash))
        if existing_assessment:
            completed_job = db.scalar(
                select(AIJob).where(
                    AIJob.type == JobType.GENERATION,
                    AIJob.dedupe_key == dedupe_key,
                    AIJob.status == JobStatus.COMPLETED,
                )
            )
            if completed_job:
                logger.info(f"Assessment {existing_assessment.id} already generated for {syllabus_hash[:12]}")
                return GenerationTrigger(job_id=completed_job.id, status=completed_job.status)

        lookup = self.jobs.create_or_find_job(db, JobType.GENERATION, dedupe_key, {"syllabusHash": syllabus_hash})
        db.commit()
        job = lookup.job

        if lookup.created:
            self.jobs.enqueue(job)
        elif job.status == JobStatus.FAILED and self.jobs.rearm_failed(db, job):
            db.refresh(job)
            self.jobs.enqueue(job)

        return GenerationTrigger(job_id=job.id, status=job.status)

    def get_assessment(self, db: Session, assessment_id: UUID) -> Assessment:
        assessment = db.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFound("Assessment not found")
        return assessment


# Global instance
assessment_service = AssessmentService()
