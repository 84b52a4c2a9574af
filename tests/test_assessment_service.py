import pytest

from app.exceptions import NotFound, ValidationFailed
from app.models import AIJob, JobStatus, JobType
from app.services.assessment_service import AssessmentService
from app.services.generation_service import GenerationService
from app.utils.hashing import syllabus_fingerprint


@pytest.fixture
def assessments(jobs):
    return AssessmentService(jobs=jobs)


def test_trigger_without_syllabus_fails(db, assessments):
    with pytest.raises(ValidationFailed):
        assessments.trigger_generation(db)


def test_trigger_twice_returns_same_job(db, assessments, queue, add_syllabus):
    add_syllabus("Math", "Algebra and geometry")

    first = assessments.trigger_generation(db)
    second = assessments.trigger_generation(db)

    assert first.job_id == second.job_id
    assert first.status == JobStatus.PENDING
    assert db.query(AIJob).filter(AIJob.type == JobType.GENERATION).count() == 1
    assert len(queue.enqueued) == 1

    job = db.get(AIJob, first.job_id)
    assert job.dedupe_key == f"generation:{assessments.current_fingerprint(db)}"
    assert job.payload == {"syllabusHash": assessments.current_fingerprint(db)}


def test_new_syllabus_means_new_job(db, assessments, add_syllabus):
    add_syllabus("Math", "Algebra")
    first = assessments.trigger_generation(db)

    add_syllabus("Physics", "Kinematics")
    second = assessments.trigger_generation(db)

    assert first.job_id != second.job_id


def test_trigger_after_generation_returns_completed_job(db, jobs, assessments, gateway, add_syllabus):
    add_syllabus("Math", "Algebra")
    trigger = assessments.trigger_generation(db)
    GenerationService(jobs=jobs, gateway=gateway).process_job(db, trigger.job_id)

    again = assessments.trigger_generation(db)

    assert again.job_id == trigger.job_id
    assert again.status == JobStatus.COMPLETED
    assert gateway.generate_assessment.call_count == 1


def test_trigger_rearms_failed_generation(db, jobs, assessments, queue, add_syllabus):
    add_syllabus("Math", "Algebra")
    trigger = assessments.trigger_generation(db)
    jobs.mark_processing(db, trigger.job_id)
    jobs.mark_failed(db, trigger.job_id, RuntimeError("quota exceeded"))
    # Simulate the RQ job having been consumed
    queue.keys.clear()

    again = assessments.trigger_generation(db)

    assert again.job_id == trigger.job_id
    assert again.status == JobStatus.PENDING
    assert len(queue.enqueued) == 2


def test_get_assessment_not_found(db, assessments):
    import uuid

    with pytest.raises(NotFound):
        assessments.get_assessment(db, uuid.uuid4())


def test_fingerprint_ignores_order():
    a = syllabus_fingerprint([("Math", "Algebra"), ("Physics", "Kinematics")])
    b = syllabus_fingerprint([("Physics", "Kinematics"), ("Math", "Algebra")])
    c = syllabus_fingerprint([("Math", "Algebra"), ("Physics", "Optics")])

    assert a == b
    assert a != c
    assert len(a) == 64
