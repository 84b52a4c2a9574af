"""
Pydantic schemas for syllabus upload
"""
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from app.schemas.common import CamelModel


class SyllabusResponse(CamelModel):
    id: UUID
    subject_name: str
    source_file: str
    created_at: Optional[datetime] = None


class SyllabusUploadResponse(CamelModel):
    """Response after syllabus upload"""
    count: int
    items: List[SyllabusResponse]
