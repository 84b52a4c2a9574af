"""
Worker entry point

    python -m app.jobs.worker generation|evaluation|all
    python -m app.jobs.worker reconcile
"""
import argparse
import logging

from rq import Worker

from app.config import settings
from app.database import SessionLocal
from app.jobs.queue import redis
from app.services.job_service import job_service

logger = logging.getLogger(__name__)

QUEUES = {
    "generation": [settings.GENERATION_QUEUE],
    "evaluation": [settings.EVALUATION_QUEUE],
    "all": [settings.GENERATION_QUEUE, settings.EVALUATION_QUEUE],
}


def reconcile() -> int:
    """Re-enqueue PENDING jobs that never reached a worker"""
    db = SessionLocal()
    try:
        return len(job_service.requeue_stale_pending(db))
    finally:
        db.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Assessment job worker")
    parser.add_argument("mode", choices=sorted(QUEUES) + ["reconcile"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.mode == "reconcile":
        logger.info(f"Requeued {reconcile()} stale pending jobs")
        return

    logger.info(f"Starting worker on {', '.join(QUEUES[args.mode])}")
    w = Worker(QUEUES[args.mode], connection=redis)
    w.work(with_scheduler=True)


if __name__ == "__main__":
    main()
