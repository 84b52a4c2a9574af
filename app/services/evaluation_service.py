"""
Evaluation worker binding: EVALUATION job -> stored evaluation result
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.exceptions import NotFound, StateConflict, ValidationFailed
from app.models import AssessmentSession, JobStatus, SessionStatus
from app.services.gemini_service import GeminiService, gemini_service
from app.services.job_service import JobService, job_service

logger = logging.getLogger(__name__)


class EvaluationService:
    """Runs one EVALUATION job to completion"""

    def __init__(self, jobs: Optional[JobService] = None, gateway: Optional[GeminiService] = None):
        self.jobs = jobs if jobs is not None else job_service
        self.gateway = gateway if gateway is not None else gemini_service

    def process_job(self, db: Session, job_id: UUID) -> None:
        """
        Evaluate the completed session named in the job payload

        Raises:
            NotFound: session missing
            StateConflict: session is not COMPLETED
            UpstreamFailure: AI call failed or returned unusable content
        """
        job = self.jobs.mark_processing(db, job_id)
        if job.status == JobStatus.COMPLETED:
            logger.info(f"Evaluation job {job_id} already completed, skipping")
            return

        raw_session_id = (job.payload or {}).get("sessionId")
        if not raw_session_id:
            raise ValidationFailed(f"Evaluation job {job_id} has no sessionId")

        session_id = UUID(raw_session_id)
        session = db.get(AssessmentSession, session_id)
        if session is None:
            raise NotFound(f"Session {session_id} not found")
        if session.status != SessionStatus.COMPLETED:
            raise StateConflict(f"Session {session_id} is {session.status.value}, evaluation requires COMPLETED")

        content = session.assessment.content
        answers = [
            {"sectionId": sub.section_id, "sectionIndex": sub.section_index, "answers": sub.answers}
            for sub in session.submissions
        ]

        # No transaction is held open across the AI call
        db.rollback()

        logger.info(f"Evaluating session {session_id} for job {job_id} ({len(answers)} sections)")
        result = self.gateway.evaluate_submission(content, answers)

        self.jobs.mark_completed(db, job_id, result)
        logger.info(f"Evaluation job {job_id} completed with score {result.get('score')}")


# Global instance
evaluation_service = EvaluationService()
