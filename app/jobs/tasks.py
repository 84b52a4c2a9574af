"""
RQ task entry points

Each task opens its own database session, runs one AIJob through its
service, and on failure records the attempt before re-raising so RQ applies
the retry policy.
"""
import logging
from uuid import UUID

from rq import get_current_job

from app.database import SessionLocal
from app.services.evaluation_service import evaluation_service
from app.services.generation_service import generation_service
from app.services.job_service import job_service

logger = logging.getLogger(__name__)


def _set_state(state: str) -> None:
    job = get_current_job()
    if job is not None:
        job.meta.update({"state": state})
        job.save_meta()


def _run(handler, job_id: str) -> None:
    db = SessionLocal()
    _set_state("running")
    try:
        handler.process_job(db, UUID(job_id))
        _set_state("done")
    except Exception as e:
        db.rollback()
        logger.warning(f"Job {job_id} attempt failed: {str(e)}")
        try:
            job_service.mark_failed(db, UUID(job_id), e)
        except Exception as record_error:
            logger.error(f"Could not record failure for job {job_id}: {str(record_error)}", exc_info=True)
        _set_state("failed")
        raise
    finally:
        db.close()


def run_generation_job(job_id: str) -> None:
    _run(generation_service, job_id)


def run_evaluation_job(job_id: str) -> None:
    _run(evaluation_service, job_id)
