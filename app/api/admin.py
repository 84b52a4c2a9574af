"""
Admin API endpoints: syllabus upload, assessment generation, job inspection
"""
from fastapi import APIRouter, Depends, UploadFile, File
from sqlalchemy.orm import Session
from uuid import UUID
import logging
from typing import List

from app.database import get_db
from app.exceptions import NotFound
from app.schemas.assessment import AssessmentResponse
from app.schemas.job import GenerationTriggerResponse, JobResponse, ReconcileResponse
from app.schemas.syllabus import SyllabusResponse, SyllabusUploadResponse
from app.services.assessment_service import assessment_service
from app.services.job_service import job_service
from app.services.syllabus_service import syllabus_service

router = APIRouter(tags=["admin"])
logger = logging.getLogger(__name__)


@router.post("/admin/syllabus/upload", response_model=SyllabusUploadResponse, status_code=201)
async def upload_syllabus(
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db)
):
    """
    Upload one or more syllabus PDFs

    - One syllabus per file, named after the file
    - Text is extracted with Gemini
    """
    rows = await syllabus_service.upload_files(db, files)
    logger.info(f"Uploaded {len(rows)} syllabus file(s)")
    return SyllabusUploadResponse(
        count=len(rows),
        items=[SyllabusResponse.model_validate(row) for row in rows]
    )


@router.get("/admin/syllabus", response_model=List[SyllabusResponse])
def list_syllabus(db: Session = Depends(get_db)):
    return syllabus_service.list_syllabi(db)


@router.post("/assessments/generate", response_model=GenerationTriggerResponse, status_code=202)
def generate_assessment(db: Session = Depends(get_db)):
    """
    Trigger assessment generation for the current syllabus set

    Repeated calls with unchanged syllabi return the same job.
    """
    trigger = assessment_service.trigger_generation(db)
    return GenerationTriggerResponse(job_id=trigger.job_id, status=trigger.status)


@router.get("/assessments/{assessment_id}", response_model=AssessmentResponse)
def get_assessment(assessment_id: UUID, db: Session = Depends(get_db)):
    return assessment_service.get_assessment(db, assessment_id)


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: UUID, db: Session = Depends(get_db)):
    """Job status, result and attempt history"""
    job = job_service.get_job(db, job_id)
    if job is None:
        raise NotFound("Job not found")
    return job


@router.post("/admin/jobs/reconcile", response_model=ReconcileResponse)
def reconcile_jobs(db: Session = Depends(get_db)):
    """Re-enqueue PENDING jobs that never reached a worker"""
    return ReconcileResponse(requeued=job_service.requeue_stale_pending(db))
