"""
Pydantic schemas for AI job status
"""
from typing import List, Dict, Any, Optional
from uuid import UUID
from datetime import datetime

from app.models.ai_job import JobStatus, JobType
from app.schemas.common import CamelModel


class JobAttemptResponse(CamelModel):
    attempt: int
    status: JobStatus
    error: Optional[str] = None
    created_at: Optional[datetime] = None


class JobResponse(CamelModel):
    """Job state plus its attempt history"""
    id: UUID
    type: JobType
    status: JobStatus
    dedupe_key: str
    payload: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    attempts: int
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    attempt_history: List[JobAttemptResponse] = []


class GenerationTriggerResponse(CamelModel):
    job_id: UUID
    status: JobStatus


class ReconcileResponse(CamelModel):
    requeued: List[UUID]
