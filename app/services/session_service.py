"""
Session lifecycle state machine

OPTED_IN --start--> ACTIVE --submit_section x totalSections--> ACTIVE --complete--> COMPLETED
ACTIVE --(inactivity, checked on next access)--> EXPIRED

Every mutating transition runs in a serializable transaction under an
advisory lock (per user for start, per session otherwise) and is applied
with a conditional update on the expected prior state, so a lost race shows
up as zero affected rows instead of a blind overwrite.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import NotFound, SessionExpired, StateConflict, ValidationFailed
from app.models import AIJob, Assessment, AssessmentSession, JobType, SectionSubmission, SessionStatus
from app.models.assessment import count_sections
from app.services.job_service import JobService, job_service
from app.utils.locks import ResourceLock
from app.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

INACTIVITY_TIMEOUT = timedelta(minutes=settings.SESSION_INACTIVITY_MINUTES)


def reconcile_expiry(session: AssessmentSession, now: datetime, timeout: timedelta = INACTIVITY_TIMEOUT) -> SessionStatus:
    """
    Status the session should have at `now`

    Pure: only an ACTIVE session whose last activity is older than the
    timeout maps to EXPIRED; every other status is returned unchanged.
    """
    if session.status != SessionStatus.ACTIVE or session.last_activity_at is None:
        return session.status
    if as_utc(now) - as_utc(session.last_activity_at) > timeout:
        return SessionStatus.EXPIRED
    return session.status


def evaluation_dedupe_key(session_id: UUID) -> str:
    return f"evaluation:{session_id}"


@dataclass
class CompletionResult:
    ok: bool
    evaluation_job_id: UUID


class SessionService:
    """Owns every write to sessions and section submissions"""

    def __init__(self, jobs: Optional[JobService] = None, inactivity_timeout: timedelta = INACTIVITY_TIMEOUT):
        self.jobs = jobs if jobs is not None else job_service
        self.inactivity_timeout = inactivity_timeout

    def opt_in(self, db: Session, user_id: str, assessment_id: UUID) -> AssessmentSession:
        """
        Register a user for an assessment

        Raises:
            NotFound: assessment does not exist
            ValidationFailed: assessment has no sections
        """
        assessment = db.get(Assessment, assessment_id)
        if assessment is None:
            raise NotFound("Assessment not found")

        total_sections = count_sections(assessment.content)
        if total_sections == 0:
            raise ValidationFailed("Assessment has no sections")

        session = AssessmentSession(
            user_id=user_id,
            assessment_id=assessment_id,
            status=SessionStatus.OPTED_IN,
            total_sections=total_sections,
            current_section_index=0,
        )
        db.add(session)
        db.commit()
        db.refresh(session)

        logger.info(f"User {user_id} opted in to assessment {assessment_id}: session {session.id}")
        return session

    def start(self, db: Session, session_id: UUID, user_id: str) -> AssessmentSession:
        """
        Activate an OPTED_IN session, enforcing one ACTIVE session per user

        Raises:
            StateConflict: user already has an ACTIVE session, or the session
                is not OPTED_IN
            NotFound: session missing or owned by another user
        """
        def _start():
            now = utcnow()

            target = db.get(AssessmentSession, session_id)
            if target is None or target.user_id != user_id:
                raise NotFound("Session not found")

            expired = db.execute(
                update(AssessmentSession)
                .where(
                    AssessmentSession.user_id == user_id,
                    AssessmentSession.status == SessionStatus.ACTIVE,
                    AssessmentSession.last_activity_at < now - self.inactivity_timeout,
                )
                .values(status=SessionStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
            if expired.rowcount:
                logger.info(f"Expired {expired.rowcount} stale session(s) for user {user_id}")

            active_count = db.scalar(
                select(func.count())
                .select_from(AssessmentSession)
                .where(
                    AssessmentSession.user_id == user_id,
                    AssessmentSession.status == SessionStatus.ACTIVE,
                )
            )
            if active_count:
                raise StateConflict("User already has an ACTIVE session")

            started = db.execute(
                update(AssessmentSession)
                .where(
                    AssessmentSession.id == session_id,
                    AssessmentSession.user_id == user_id,
                    AssessmentSession.status == SessionStatus.OPTED_IN,
                )
                .values(status=SessionStatus.ACTIVE, started_at=now, last_activity_at=now)
                .execution_options(synchronize_session=False)
            )
            if started.rowcount == 0:
                raise StateConflict("Session must be in OPTED_IN state")

        try:
            ResourceLock(db).with_lock(f"session-user:{user_id}", _start)
        except IntegrityError as exc:
            # Single-active-session index fired: another start won
            raise StateConflict("User already has an ACTIVE session") from exc

        session = db.get(AssessmentSession, session_id, populate_existing=True)
        logger.info(f"Session {session_id} started for user {user_id}")
        return session

    def submit_section(
        self,
        db: Session,
        session_id: UUID,
        user_id: str,
        section_id: str,
        section_index: int,
        answers: Any,
    ) -> bool:
        """
        Accept the answers for the next section, strictly in order

        Raises:
            NotFound: session missing or owned by another user
            SessionExpired: inactivity timeout passed (session is now EXPIRED)
            StateConflict: session not ACTIVE, out-of-order or repeated section
        """
        def _submit():
            now = utcnow()
            session = self._load_for_mutation(db, session_id, user_id, now)

            if session.current_section_index >= session.total_sections:
                raise StateConflict("All sections have already been submitted")
            if section_index != session.current_section_index:
                raise StateConflict(
                    f"Sections must be submitted in strict order: expected section "
                    f"{session.current_section_index}, got {section_index}"
                )

            db.add(SectionSubmission(
                session_id=session_id,
                section_id=section_id,
                section_index=section_index,
                answers=answers,
            ))

            advanced = db.execute(
                update(AssessmentSession)
                .where(
                    AssessmentSession.id == session_id,
                    AssessmentSession.status == SessionStatus.ACTIVE,
                    AssessmentSession.current_section_index == section_index,
                )
                .values(
                    current_section_index=AssessmentSession.current_section_index + 1,
                    last_activity_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if advanced.rowcount == 0:
                raise StateConflict("Section submission conflict")

            db.flush()

        try:
            ResourceLock(db).with_lock(f"session:{session_id}", _submit)
        except IntegrityError as exc:
            # (session_id, section_index) already taken by a concurrent submission
            raise StateConflict("Section has already been submitted") from exc

        logger.info(f"Session {session_id}: section {section_index} ({section_id}) accepted")
        return True

    def complete(self, db: Session, session_id: UUID, user_id: str) -> CompletionResult:
        """
        Finish a session whose sections are all submitted and queue its evaluation

        Returns:
            CompletionResult with the EVALUATION job id, new or pre-existing

        Raises:
            NotFound: session missing or owned by another user
            SessionExpired: inactivity timeout passed (session is now EXPIRED)
            StateConflict: not ACTIVE, sections outstanding, or lost a completion race
        """
        def _complete():
            now = utcnow()
            session = self._load_for_mutation(db, session_id, user_id, now)

            if session.current_section_index != session.total_sections:
                raise StateConflict("All sections must be submitted before completion")

            completed = db.execute(
                update(AssessmentSession)
                .where(
                    AssessmentSession.id == session_id,
                    AssessmentSession.status == SessionStatus.ACTIVE,
                    AssessmentSession.current_section_index == session.total_sections,
                )
                .values(status=SessionStatus.COMPLETED, completed_at=now, last_activity_at=now)
                .execution_options(synchronize_session=False)
            )
            if completed.rowcount == 0:
                raise StateConflict("Session completion conflict")

            lookup = self.jobs.create_or_find_job(
                db,
                JobType.EVALUATION,
                evaluation_dedupe_key(session_id),
                {"sessionId": str(session_id)},
            )
            return lookup.job

        job = ResourceLock(db).with_lock(f"session:{session_id}", _complete)

        # Enqueued after commit; a crash here leaves a PENDING job for requeue_stale_pending
        self.jobs.enqueue(job)

        logger.info(f"Session {session_id} completed, evaluation job {job.id}")
        return CompletionResult(ok=True, evaluation_job_id=job.id)

    def get_session(self, db: Session, session_id: UUID, user_id: str) -> AssessmentSession:
        """
        Read a session with its submissions

        Raises:
            NotFound: session missing or owned by another user
        """
        session = db.get(AssessmentSession, session_id)
        if session is None or session.user_id != user_id:
            raise NotFound("Session not found")
        return session

    def get_evaluation_job(self, db: Session, session_id: UUID, user_id: str) -> AIJob:
        """
        Evaluation job of an owned session

        Raises:
            NotFound: session not owned, or no evaluation job yet
        """
        self.get_session(db, session_id, user_id)
        job = self.jobs.find_by_dedupe_key(db, evaluation_dedupe_key(session_id))
        if job is None:
            raise NotFound("Evaluation not found")
        return job

    def _load_for_mutation(self, db: Session, session_id: UUID, user_id: str, now: datetime) -> AssessmentSession:
        """
        Load an owned ACTIVE session, applying lazy inactivity expiry

        An expired session is stored as EXPIRED before the conflict is raised,
        so the transition survives the failed request.
        """
        session = db.get(AssessmentSession, session_id, populate_existing=True)
        if session is None or session.user_id != user_id:
            raise NotFound("Session not found")

        if reconcile_expiry(session, now, self.inactivity_timeout) == SessionStatus.EXPIRED:
            session.status = SessionStatus.EXPIRED
            db.commit()
            logger.warning(f"Session {session_id} expired after inactivity")
            raise SessionExpired("Session expired due to inactivity")

        if session.status != SessionStatus.ACTIVE:
            raise StateConflict(f"Session is not ACTIVE (status: {session.status.value})")

        return session


# Global instance
session_service = SessionService()
