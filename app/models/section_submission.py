"""
SectionSubmission model - append-only answers per accepted section
"""
from sqlalchemy import Column, String, Integer, DateTime, JSON, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.timeutils import utcnow
import uuid


class SectionSubmission(Base):
    """
    Section submissions table - exactly one row per (session, section index)
    """
    __tablename__ = "section_submissions"
    __table_args__ = (
        UniqueConstraint("session_id", "section_index", name="uq_submission_session_index"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("sessions.id"), nullable=False, index=True)
    section_id = Column(String(128), nullable=False)
    section_index = Column(Integer, nullable=False)
    answers = Column(JSON().with_variant(JSONB(), "postgresql"))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    session = relationship("AssessmentSession", back_populates="submissions")

    def __repr__(self):
        return f"<SectionSubmission(session_id={self.session_id}, section_index={self.section_index})>"
