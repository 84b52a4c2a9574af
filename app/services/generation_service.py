"""
Generation worker binding: GENERATION job -> stored Assessment
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import transaction
from app.exceptions import UpstreamFailure, ValidationFailed
from app.models import Assessment, JobStatus, Syllabus
from app.models.assessment import count_sections
from app.services.gemini_service import GeminiService, gemini_service
from app.services.job_service import JobService, job_service

logger = logging.getLogger(__name__)


class GenerationService:
    """Runs one GENERATION job to completion"""

    def __init__(self, jobs: Optional[JobService] = None, gateway: Optional[GeminiService] = None):
        self.jobs = jobs if jobs is not None else job_service
        self.gateway = gateway if gateway is not None else gemini_service

    def process_job(self, db: Session, job_id: UUID) -> None:
        """
        Produce the assessment for the job's syllabus hash

        Safe to re-run: a redelivered job whose assessment is already stored
        completes without calling the AI gateway.

        Raises:
            UpstreamFailure: AI call failed or returned unusable content
        """
        job = self.jobs.mark_processing(db, job_id)
        if job.status == JobStatus.COMPLETED:
            logger.info(f"Generation job {job_id} already completed, skipping")
            return

        syllabus_hash = (job.payload or {}).get("syllabusHash")
        if not syllabus_hash:
            raise ValidationFailed(f"Generation job {job_id} has no syllabusHash")

        existing = self._find_assessment(db, syllabus_hash)
        if existing:
            logger.info(f"Assessment {existing.id} already exists for job {job_id}, completing without AI call")
            self.jobs.mark_completed(db, job_id, {"assessmentId": str(existing.id)})
            return

        syllabi = [
            {"subjectName": row.subject_name, "rawText": row.raw_text}
            for row in db.scalars(select(Syllabus).order_by(Syllabus.subject_name, Syllabus.created_at)).all()
        ]
        if not syllabi:
            raise ValidationFailed("No syllabus uploaded")

        # No transaction is held open across the AI call
        db.rollback()

        logger.info(f"Generating assessment for job {job_id} from {len(syllabi)} syllabi")
        content = self.gateway.generate_assessment(syllabi)
        if count_sections(content) == 0:
            raise UpstreamFailure("Generated assessment has no sections")

        try:
            with transaction(db):
                assessment = Assessment(syllabus_hash=syllabus_hash, content=content)
                db.add(assessment)
                db.flush()
                self.jobs.record_completion(db, job_id, {"assessmentId": str(assessment.id)})
        except IntegrityError:
            # Another delivery stored the assessment first
            existing = self._find_assessment(db, syllabus_hash)
            if existing is None:
                raise
            self.jobs.mark_completed(db, job_id, {"assessmentId": str(existing.id)})
            return

        logger.info(f"Generation job {job_id} stored assessment {assessment.id}")

    def _find_assessment(self, db: Session, syllabus_hash: str) -> Optional[Assessment]:
        return db.scalar(select(Assessment).where(Assessment.syllabus_hash == syllabus_hash))


# Global instance
generation_service = GenerationService()
