"""Shared fixtures: in-memory database, recording queue, offline AI gateway."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base
from app.models import Assessment, Syllabus
from app.services.gemini_service import GeminiService
from app.services.job_service import JobService
from app.services.session_service import SessionService


class FakeQueue:
    """Records enqueues; a key already handed over is not enqueued again."""

    def __init__(self):
        self.enqueued = []
        self.keys = set()

    def enqueue(self, queue_name, func, payload, idempotency_key, max_attempts=3, initial_backoff_ms=500):
        if idempotency_key in self.keys:
            return False
        self.keys.add(idempotency_key)
        self.enqueued.append(
            {
                "queue": queue_name,
                "func": func,
                "payload": payload,
                "key": idempotency_key,
                "max_attempts": max_attempts,
            }
        )
        return True


def content_with_sections(count):
    return {
        "subjects": [
            {
                "name": "Math",
                "sections": [
                    {
                        "title": f"Section {i}",
                        "max_score": 10,
                        "questions": [{"id": "Q1", "question": "2 + 2?", "max_score": 10, "difficulty": "easy"}],
                    }
                    for i in range(count)
                ],
            }
        ]
    }


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs an explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed database shared by sessions on separate threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'assessments.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    # Writers queue at BEGIN, like callers waiting on the advisory lock
    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def queue():
    return FakeQueue()


@pytest.fixture
def jobs(queue):
    return JobService(queue=queue)


@pytest.fixture
def sessions(jobs):
    return SessionService(jobs=jobs)


@pytest.fixture
def gateway():
    """Offline Gemini gateway wrapped so calls can be counted."""
    return MagicMock(wraps=GeminiService(offline=True))


@pytest.fixture
def make_assessment(db):
    def _make(sections=2, syllabus_hash="a" * 64):
        assessment = Assessment(syllabus_hash=syllabus_hash, content=content_with_sections(sections))
        db.add(assessment)
        db.commit()
        db.refresh(assessment)
        return assessment

    return _make


@pytest.fixture
def add_syllabus(db):
    def _add(subject_name, raw_text):
        row = Syllabus(subject_name=subject_name, raw_text=raw_text, source_file=f"{subject_name}.pdf")
        db.add(row)
        db.commit()
        return row

    return _add
