"""
AssessmentSession model - one user's run through an assessment
"""
from sqlalchemy import Column, String, Integer, DateTime, Enum, ForeignKey, Index, Uuid, func, text
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.timeutils import utcnow
import enum
import uuid


class SessionStatus(str, enum.Enum):
    OPTED_IN = "OPTED_IN"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class AssessmentSession(Base):
    """
    Sessions table - lifecycle OPTED_IN -> ACTIVE -> COMPLETED | EXPIRED

    Only the session service writes to this table.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        Index("ix_sessions_user_status", "user_id", "status"),
        # Backstop for the single-active-session rule
        Index(
            "uq_sessions_active_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(128), nullable=False)
    assessment_id = Column(Uuid, ForeignKey("assessments.id"), nullable=False)
    status = Column(
        Enum(SessionStatus, name="session_status", native_enum=False, length=20),
        nullable=False,
        default=SessionStatus.OPTED_IN,
    )
    total_sections = Column(Integer, nullable=False)
    current_section_index = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True))
    last_activity_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    assessment = relationship("Assessment")
    submissions = relationship(
        "SectionSubmission",
        back_populates="session",
        order_by="SectionSubmission.section_index",
    )

    def __repr__(self):
        return (
            f"<AssessmentSession(id={self.id}, user_id={self.user_id}, status={self.status}, "
            f"section={self.current_section_index}/{self.total_sections})>"
        )
