"""
Database models package
"""
from app.models.syllabus import Syllabus
from app.models.assessment import Assessment
from app.models.session import AssessmentSession, SessionStatus
from app.models.section_submission import SectionSubmission
from app.models.ai_job import AIJob, AIJobAttempt, JobStatus, JobType

__all__ = [
    "Syllabus",
    "Assessment",
    "AssessmentSession",
    "SessionStatus",
    "SectionSubmission",
    "AIJob",
    "AIJobAttempt",
    "JobStatus",
    "JobType",
]
