"""
Assessment model - generated, content-addressed by syllabus fingerprint
"""
from sqlalchemy import Column, String, DateTime, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from app.database import Base
from app.utils.timeutils import utcnow
import uuid


class Assessment(Base):
    """
    Assessments table - one row per distinct syllabus set, never regenerated
    """
    __tablename__ = "assessments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    syllabus_hash = Column(String(64), unique=True, nullable=False, index=True)
    content = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)  # subjects -> sections -> questions
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    @property
    def total_sections(self) -> int:
        return count_sections(self.content)

    def __repr__(self):
        return f"<Assessment(id={self.id}, syllabus_hash={self.syllabus_hash[:12]})>"


def count_sections(content) -> int:
    """Sum of sections across all subjects of an assessment content tree"""
    if not isinstance(content, dict):
        return 0
    total = 0
    for subject in content.get("subjects") or []:
        if isinstance(subject, dict):
            total += len(subject.get("sections") or [])
    return total
