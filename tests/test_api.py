"""HTTP surface, end to end over the in-memory database."""

import uuid

import pytest
from fastapi.testclient import TestClient

from app.database import get_db
from app.main import app
from app.services.gemini_service import GeminiService
from app.services.generation_service import GenerationService
from app.services.job_service import job_service
from app.services.syllabus_service import syllabus_service


@pytest.fixture
def client(session_factory, queue, monkeypatch):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(job_service, "queue", queue)
    monkeypatch.setattr(syllabus_service, "gateway", GeminiService(offline=True))
    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _run_generation(session_factory, job_id):
    db = session_factory()
    try:
        GenerationService(jobs=job_service, gateway=GeminiService(offline=True)).process_job(db, uuid.UUID(job_id))
    finally:
        db.close()


def _upload(client):
    return client.post(
        "/admin/syllabus/upload",
        files=[
            ("files", ("Math.pdf", b"Algebra, calculus", "application/pdf")),
            ("files", ("Physics.pdf", b"Kinematics, optics", "application/pdf")),
        ],
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_upload_rejects_non_pdf(client):
    response = client.post("/admin/syllabus/upload", files=[("files", ("notes.txt", b"hello", "text/plain"))])

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_generate_without_syllabus(client):
    response = client.post("/assessments/generate")

    assert response.status_code == 400
    assert response.json() == {"error": "validation_error", "message": "No syllabus uploaded", "status_code": 400}


def test_unknown_job_is_404(client):
    response = client.get(f"/jobs/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_full_assessment_flow(client, session_factory, queue):
    upload = _upload(client)
    assert upload.status_code == 201
    assert upload.json()["count"] == 2
    assert {item["subjectName"] for item in upload.json()["items"]} == {"Math", "Physics"}
    assert len(client.get("/admin/syllabus").json()) == 2

    generate = client.post("/assessments/generate")
    assert generate.status_code == 202
    job_id = generate.json()["jobId"]
    assert generate.json()["status"] == "PENDING"
    assert client.post("/assessments/generate").json()["jobId"] == job_id

    _run_generation(session_factory, job_id)

    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "COMPLETED"
    assert job["attemptHistory"][0]["status"] == "COMPLETED"
    assessment_id = job["result"]["assessmentId"]

    assessment = client.get(f"/assessments/{assessment_id}").json()
    assert assessment["totalSections"] == 2

    opt_in = client.post("/sessions/opt-in", json={"userId": "u1", "assessmentId": assessment_id})
    assert opt_in.status_code == 201
    session_id = opt_in.json()["id"]
    assert opt_in.json()["status"] == "OPTED_IN"
    assert opt_in.json()["totalSections"] == 2

    start = client.post("/sessions/start", json={"sessionId": session_id, "userId": "u1"})
    assert start.status_code == 200
    assert start.json()["status"] == "ACTIVE"

    submit_url = f"/sessions/{session_id}/submit-section"
    first = client.post(submit_url, json={"userId": "u1", "sectionId": "s0", "sectionIndex": 0, "answers": {"Q1": "a"}})
    assert first.json() == {"ok": True}

    again = client.post(submit_url, json={"userId": "u1", "sectionId": "s0", "sectionIndex": 0, "answers": {"Q1": "b"}})
    assert again.status_code == 409
    assert again.json()["error"] == "state_conflict"

    early = client.post(f"/sessions/{session_id}/complete", json={"userId": "u1"})
    assert early.status_code == 409

    second = client.post(submit_url, json={"userId": "u1", "sectionId": "s1", "sectionIndex": 1, "answers": {"Q1": "c"}})
    assert second.status_code == 200

    complete = client.post(f"/sessions/{session_id}/complete", json={"userId": "u1"})
    assert complete.status_code == 200
    assert complete.json()["ok"] is True
    evaluation_job_id = complete.json()["evaluationJobId"]
    assert queue.enqueued[-1]["key"] == evaluation_job_id

    session = client.get(f"/sessions/{session_id}", params={"userId": "u1"}).json()
    assert session["status"] == "COMPLETED"
    assert [s["sectionIndex"] for s in session["submissions"]] == [0, 1]

    evaluation = client.get(f"/sessions/{session_id}/evaluation", params={"userId": "u1"})
    assert evaluation.status_code == 200
    assert evaluation.json()["id"] == evaluation_job_id
    assert evaluation.json()["type"] == "EVALUATION"

    assert client.get(f"/sessions/{session_id}", params={"userId": "u2"}).status_code == 404


def test_second_start_for_user_conflicts(client, session_factory):
    _upload(client)
    job_id = client.post("/assessments/generate").json()["jobId"]
    _run_generation(session_factory, job_id)
    assessment_id = client.get(f"/jobs/{job_id}").json()["result"]["assessmentId"]

    first = client.post("/sessions/opt-in", json={"userId": "u1", "assessmentId": assessment_id}).json()
    second = client.post("/sessions/opt-in", json={"userId": "u1", "assessmentId": assessment_id}).json()
    client.post("/sessions/start", json={"sessionId": first["id"], "userId": "u1"})

    response = client.post("/sessions/start", json={"sessionId": second["id"], "userId": "u1"})

    assert response.status_code == 409
    assert "already has an ACTIVE session" in response.json()["message"]


def test_reconcile_endpoint(client):
    response = client.post("/admin/jobs/reconcile")

    assert response.status_code == 200
    assert response.json() == {"requeued": []}
