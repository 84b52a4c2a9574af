"""
Pydantic schemas for assessment content and responses
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Any, Optional
from uuid import UUID
from datetime import datetime

from app.schemas.common import CamelModel


class AssessmentQuestion(BaseModel):
    """Single question inside a section"""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    question: str
    max_score: float = Field(..., ge=0)
    difficulty: str = "medium"


class AssessmentSection(BaseModel):
    """Ordered block of questions submitted as one unit"""
    title: str
    max_score: float = Field(..., ge=0)
    questions: List[AssessmentQuestion] = Field(..., min_length=1)


class AssessmentSubject(BaseModel):
    name: str
    sections: List[AssessmentSection] = Field(..., min_length=1)


class AssessmentContent(BaseModel):
    """Structured assessment as produced by the generator"""
    subjects: List[AssessmentSubject] = Field(..., min_length=1)


class EvaluationResult(BaseModel):
    """Structured evaluation as produced by the evaluator"""
    score: float
    feedback: str
    section_breakdown: List[Dict[str, Any]] = Field(default_factory=list)


class AssessmentResponse(CamelModel):
    id: UUID
    syllabus_hash: str
    total_sections: int
    content: Dict[str, Any]
    created_at: Optional[datetime] = None
