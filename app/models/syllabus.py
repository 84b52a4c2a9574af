"""
Syllabus model - uploaded source material for generation
"""
from sqlalchemy import Column, String, Text, DateTime, Uuid, func
from app.database import Base
from app.utils.timeutils import utcnow
import uuid


class Syllabus(Base):
    """
    Syllabi table - immutable once created, one row per uploaded file
    """
    __tablename__ = "syllabi"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subject_name = Column(String(255), nullable=False)
    raw_text = Column(Text, nullable=False, default="")
    source_file = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    def __repr__(self):
        return f"<Syllabus(id={self.id}, subject_name={self.subject_name})>"
