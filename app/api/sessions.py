"""
Session lifecycle API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from app.database import get_db
from app.schemas.job import JobResponse
from app.schemas.session import (
    OptInRequest, StartRequest, SubmitSectionRequest, CompleteRequest,
    SessionResponse, SubmitSectionResponse, CompleteResponse
)
from app.services.session_service import session_service

router = APIRouter(prefix="/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


@router.post("/opt-in", response_model=SessionResponse, status_code=201)
def opt_in(request: OptInRequest, db: Session = Depends(get_db)):
    """Register the user for an assessment (status OPTED_IN)"""
    return session_service.opt_in(db, request.user_id, request.assessment_id)


@router.post("/start", response_model=SessionResponse)
def start_session(request: StartRequest, db: Session = Depends(get_db)):
    """
    Start an OPTED_IN session

    Fails with 409 if the user already has an ACTIVE session.
    """
    return session_service.start(db, request.session_id, request.user_id)


@router.post("/{session_id}/submit-section", response_model=SubmitSectionResponse)
def submit_section(session_id: UUID, request: SubmitSectionRequest, db: Session = Depends(get_db)):
    """
    Submit answers for the current section

    - Sections are accepted strictly in order, once each
    - A session idle past the inactivity limit is expired (409)
    """
    ok = session_service.submit_section(
        db,
        session_id,
        request.user_id,
        request.section_id,
        request.section_index,
        request.answers,
    )
    return SubmitSectionResponse(ok=ok)


@router.post("/{session_id}/complete", response_model=CompleteResponse)
def complete_session(session_id: UUID, request: CompleteRequest, db: Session = Depends(get_db)):
    """Complete the session and queue its evaluation"""
    result = session_service.complete(db, session_id, request.user_id)
    return CompleteResponse(ok=result.ok, evaluation_job_id=result.evaluation_job_id)


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: UUID, user_id: str = Query(..., alias="userId"), db: Session = Depends(get_db)):
    return session_service.get_session(db, session_id, user_id)


@router.get("/{session_id}/evaluation", response_model=JobResponse)
def get_evaluation(session_id: UUID, user_id: str = Query(..., alias="userId"), db: Session = Depends(get_db)):
    """Evaluation job (status and result) for a completed session"""
    return session_service.get_evaluation_job(db, session_id, user_id)
