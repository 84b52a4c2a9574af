"""
AIJob / AIJobAttempt models - bookkeeping for generation and evaluation work
"""
from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, JSON, ForeignKey, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.timeutils import utcnow
import enum
import uuid


class JobType(str, enum.Enum):
    GENERATION = "GENERATION"
    EVALUATION = "EVALUATION"


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class AIJob(Base):
    """
    AI jobs table - at most one row per logical unit of work (dedupe_key)

    dedupe_key is "generation:<syllabusHash>" or "evaluation:<sessionId>".
    """
    __tablename__ = "ai_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    type = Column(Enum(JobType, name="job_type", native_enum=False, length=20), nullable=False)
    status = Column(
        Enum(JobStatus, name="job_status", native_enum=False, length=20),
        nullable=False,
        default=JobStatus.PENDING,
    )
    dedupe_key = Column(String(255), unique=True, nullable=False)
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    result = Column(JSON().with_variant(JSONB(), "postgresql"))
    attempts = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    attempt_history = relationship(
        "AIJobAttempt",
        back_populates="job",
        order_by="AIJobAttempt.attempt",
    )

    def __repr__(self):
        return f"<AIJob(id={self.id}, type={self.type}, status={self.status}, attempts={self.attempts})>"


class AIJobAttempt(Base):
    """
    Job attempts table - append-only audit trail, one row per processing attempt
    """
    __tablename__ = "ai_job_attempts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = Column(Uuid, ForeignKey("ai_jobs.id"), nullable=False, index=True)
    attempt = Column(Integer, nullable=False)
    status = Column(Enum(JobStatus, name="job_status", native_enum=False, length=20), nullable=False)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    job = relationship("AIJob", back_populates="attempt_history")

    def __repr__(self):
        return f"<AIJobAttempt(job_id={self.job_id}, attempt={self.attempt}, status={self.status})>"
