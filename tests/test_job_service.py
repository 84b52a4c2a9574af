import uuid
from datetime import timedelta

import pytest

from app.exceptions import NotFound, UpstreamFailure
from app.models import AIJob, JobStatus, JobType
from app.utils.timeutils import utcnow


def _create(db, jobs, key="generation:abc"):
    lookup = jobs.create_or_find_job(db, JobType.GENERATION, key, {"syllabusHash": "abc"})
    db.commit()
    return lookup


def test_create_or_find_converges_on_one_job(db, jobs):
    first = _create(db, jobs)
    second = _create(db, jobs)

    assert first.created is True
    assert second.created is False
    assert first.job.id == second.job.id
    assert db.query(AIJob).count() == 1


def test_create_or_find_recovers_from_lost_insert_race(db, jobs, monkeypatch):
    """A unique violation on dedupe_key returns the existing row instead of failing."""
    existing = _create(db, jobs).job

    real_find = jobs.find_by_dedupe_key
    calls = []

    def find_missing_once(session, key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return real_find(session, key)

    monkeypatch.setattr(jobs, "find_by_dedupe_key", find_missing_once)

    lookup = jobs.create_or_find_job(db, JobType.GENERATION, "generation:abc", {"syllabusHash": "abc"})
    db.commit()

    assert lookup.created is False
    assert lookup.job.id == existing.id
    assert len(calls) == 2
    assert db.query(AIJob).count() == 1


def test_enqueue_uses_job_id_and_type_queue(db, jobs, queue):
    job = _create(db, jobs).job

    assert jobs.enqueue(job) is True
    assert jobs.enqueue(job) is False

    assert queue.enqueued == [
        {
            "queue": "assessment-generation",
            "func": "app.jobs.tasks.run_generation_job",
            "payload": {"job_id": str(job.id)},
            "key": str(job.id),
            "max_attempts": 3,
        }
    ]


def test_attempt_history_follows_status(db, jobs):
    job_id = _create(db, jobs).job.id

    job = jobs.mark_processing(db, job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 1

    jobs.mark_failed(db, job_id, UpstreamFailure("gemini timeout"))
    job = jobs.get_job(db, job_id)
    assert job.status == JobStatus.FAILED
    assert job.error_message == "gemini timeout"

    # Queue retry of a FAILED job
    job = jobs.mark_processing(db, job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 2

    jobs.mark_completed(db, job_id, {"assessmentId": "a1"})
    job = jobs.get_job(db, job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.result == {"assessmentId": "a1"}
    assert job.error_message is None
    assert [(a.attempt, a.status, a.error) for a in job.attempt_history] == [
        (1, JobStatus.FAILED, "gemini timeout"),
        (2, JobStatus.COMPLETED, None),
    ]


def test_mark_processing_leaves_completed_job_alone(db, jobs):
    job_id = _create(db, jobs).job.id
    jobs.mark_processing(db, job_id)
    jobs.mark_completed(db, job_id, {"ok": True})

    job = jobs.mark_processing(db, job_id)

    assert job.status == JobStatus.COMPLETED
    assert job.attempts == 1


def test_mark_failed_does_not_undo_completion(db, jobs):
    job_id = _create(db, jobs).job.id
    jobs.mark_processing(db, job_id)
    jobs.mark_completed(db, job_id, {"ok": True})

    jobs.mark_failed(db, job_id, RuntimeError("late failure"))

    job = jobs.get_job(db, job_id)
    assert job.status == JobStatus.COMPLETED
    assert sorted(a.status.value for a in job.attempt_history) == ["COMPLETED", "FAILED"]


def test_unknown_job(db, jobs):
    assert jobs.get_job(db, uuid.uuid4()) is None
    with pytest.raises(NotFound):
        jobs.mark_processing(db, uuid.uuid4())


def test_rearm_failed_only_once(db, jobs):
    job = _create(db, jobs).job
    jobs.mark_processing(db, job.id)
    jobs.mark_failed(db, job.id, RuntimeError("boom"))

    assert jobs.rearm_failed(db, job) is True
    assert jobs.rearm_failed(db, job) is False

    job = jobs.get_job(db, job.id)
    assert job.status == JobStatus.PENDING
    assert job.error_message is None


def test_requeue_stale_pending(db, jobs, queue):
    stale = _create(db, jobs, "evaluation:old").job
    fresh = _create(db, jobs, "evaluation:new").job
    stale.created_at = utcnow() - timedelta(minutes=30)
    db.commit()

    requeued = jobs.requeue_stale_pending(db, older_than=timedelta(minutes=10))

    assert requeued == [stale.id]
    assert [item["key"] for item in queue.enqueued] == [str(stale.id)]
    assert fresh.id not in requeued

    # Still queued: not handed over twice
    assert jobs.requeue_stale_pending(db, older_than=timedelta(minutes=10)) == []
