"""
RQ-backed job queue

RQ job ids are the AIJob ids. A job found queued, scheduled for retry or
running is not enqueued again; the check is not atomic, so two concurrent
enqueues of one id can both go through, and workers tolerate the duplicate
delivery.
"""
import logging
from typing import Any, Dict, List, Optional

from redis import Redis
from rq import Queue, Retry
from rq.job import Job, JobStatus as RQJobStatus

from app.config import settings

logger = logging.getLogger(__name__)

redis = Redis.from_url(settings.REDIS_URL)

# RQ jobs in these states are finished with and may be replaced
_REPLACEABLE = {RQJobStatus.FINISHED, RQJobStatus.FAILED, RQJobStatus.STOPPED, RQJobStatus.CANCELED}


def backoff_intervals(max_attempts: int, initial_backoff_ms: int) -> List[float]:
    """
    Exponential retry delays in seconds

    3 attempts starting at 500ms -> [0.5, 1.0]: one delay per retry, doubling.
    """
    return [initial_backoff_ms / 1000.0 * (2 ** i) for i in range(max(max_attempts - 1, 0))]


class JobQueue:
    """Named durable queues with idempotent enqueue and exponential retry"""

    def __init__(self, connection: Optional[Redis] = None):
        self.connection = connection if connection is not None else redis

    def queue(self, queue_name: str) -> Queue:
        return Queue(queue_name, connection=self.connection)

    def enqueue(
        self,
        queue_name: str,
        func: str,
        payload: Dict[str, Any],
        idempotency_key: str,
        max_attempts: int = settings.JOB_MAX_ATTEMPTS,
        initial_backoff_ms: int = settings.JOB_INITIAL_BACKOFF_MS,
    ) -> bool:
        """
        Enqueue func(**payload) unless a live job with the same key exists

        Args:
            queue_name: RQ queue name
            func: Dotted path of the task function
            payload: Keyword arguments for the task
            idempotency_key: RQ job id
            max_attempts: Total attempts including the first
            initial_backoff_ms: Delay before the first retry

        Returns:
            True if a new RQ job was enqueued
        """
        if Job.exists(idempotency_key, connection=self.connection):
            existing = Job.fetch(idempotency_key, connection=self.connection)
            status = existing.get_status()
            if status not in _REPLACEABLE:
                logger.info(f"Job {idempotency_key} already on queue {queue_name} ({status}), not enqueued again")
                return False
            existing.delete()

        retry = None
        if max_attempts > 1:
            retry = Retry(max=max_attempts - 1, interval=backoff_intervals(max_attempts, initial_backoff_ms))

        self.queue(queue_name).enqueue(
            func,
            kwargs=payload,
            job_id=idempotency_key,
            retry=retry,
            job_timeout=settings.JOB_TIMEOUT_SECONDS,
            result_ttl=3600,
            failure_ttl=7 * 24 * 3600,
        )
        logger.info(f"Enqueued {func} as {idempotency_key} on {queue_name} (max attempts: {max_attempts})")
        return True


# Global instance
job_queue = JobQueue()
