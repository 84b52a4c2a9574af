"""
Pydantic schemas for session lifecycle requests and responses
"""
from pydantic import Field
from typing import List, Any, Optional
from uuid import UUID
from datetime import datetime

from app.models.session import SessionStatus
from app.schemas.common import CamelModel


class OptInRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    assessment_id: UUID


class StartRequest(CamelModel):
    session_id: UUID
    user_id: str = Field(..., min_length=1, max_length=128)


class SubmitSectionRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    section_id: str = Field(..., min_length=1, max_length=128)
    section_index: int = Field(..., ge=0)
    answers: Any = None


class CompleteRequest(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=128)


class SectionSubmissionResponse(CamelModel):
    id: UUID
    section_id: str
    section_index: int
    answers: Any = None
    created_at: Optional[datetime] = None


class SessionResponse(CamelModel):
    """Session state with accepted submissions in section order"""
    id: UUID
    user_id: str
    assessment_id: UUID
    status: SessionStatus
    total_sections: int
    current_section_index: int
    started_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    submissions: List[SectionSubmissionResponse] = []


class SubmitSectionResponse(CamelModel):
    ok: bool = True


class CompleteResponse(CamelModel):
    ok: bool = True
    evaluation_job_id: UUID
