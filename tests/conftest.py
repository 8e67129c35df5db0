import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")

import random
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from examsim.core.database import build_engine, get_db
from examsim.main import app
from examsim.models.orm import Base, Question, DifficultyLevel
from examsim.services import exam


def add_question(db, qid, subtopic="Neuro", difficulty="medium", correct="A"):
    q = Question(
        id=qid, stem=f"Stem {qid}",
        option_a="Alpha", option_b="Bravo", option_c="Charlie", option_d="Delta", option_e="Echo",
        correct_answer=correct, explanation=f"Why {qid}", subtopic=subtopic,
        difficulty=DifficultyLevel(difficulty), learning_point=None, modality="CT",
    )
    db.add(q)
    return q


def take_exam(db, answers, seed=0):
    """Start an exam over the whole catalog, answer it, and complete it."""
    total = db.query(Question).count()
    session = exam.start_exam(db, total, rng=random.Random(seed))
    for qid, selected in answers.items():
        exam.submit_answer(db, session.id, qid, selected)
    exam.complete_exam(db, session.id, time_remaining=0)
    return session.id


@pytest.fixture
def engine():
    eng = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def catalog_db(db):
    """Two subtopics across all three difficulty levels; every answer is A."""
    for i in range(4):
        add_question(db, f"neuro-m{i}", "Neuro", "medium")
    for i in range(3):
        add_question(db, f"neuro-h{i}", "Neuro", "hard")
    for i in range(3):
        add_question(db, f"chest-vh{i}", "Chest", "very_hard")
    db.commit()
    return db


@pytest.fixture
def client(session_factory):
    def override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
