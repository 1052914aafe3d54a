import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["ENVIRONMENT"] = "testing"
os.environ["PYQ_STATS_CACHE_TTL"] = "0"
os.environ["SECRET_KEY"] = "test-secret"

import pytest
from types import SimpleNamespace
from fastapi.testclient import TestClient

from examprep.core.auth import create_token
from examprep.core.database import engine, SessionLocal
from examprep.main import app
from examprep.models.orm import (
    Base, Subject, Lesson, Topic, Subtopic, Question, QuestionOption, Difficulty
)


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def headers():
    def _headers(user_id="student-1", roles=("student",), stream_id=None):
        return {"Authorization": f"Bearer {create_token(user_id, list(roles), stream_id=stream_id)}"}
    return _headers


@pytest.fixture
def catalog(db):
    """Two subjects in one stream, one subject in another."""
    physics = Subject(name="Physics", stream_id="stream-1")
    biology = Subject(name="Biology", stream_id="stream-1")
    history = Subject(name="History", stream_id="stream-2")
    db.add_all([physics, biology, history]); db.flush()
    mechanics = Lesson(name="Mechanics", subject_id=physics.id)
    db.add(mechanics); db.flush()
    kinematics = Topic(name="Kinematics", subject_id=physics.id, lesson_id=mechanics.id)
    cells = Topic(name="Cells", subject_id=biology.id)
    db.add_all([kinematics, cells]); db.flush()
    projectiles = Subtopic(name="Projectiles", topic_id=kinematics.id)
    db.add(projectiles); db.commit()
    return SimpleNamespace(physics=physics, biology=biology, history=history, mechanics=mechanics,
                           kinematics=kinematics, cells=cells, projectiles=projectiles)


@pytest.fixture
def make_question(db):
    def _make(subject=None, lesson=None, topic=None, subtopic=None, difficulty=Difficulty.MEDIUM,
              pyq=False, year=None, status="approved", stem="What is the answer?", explanation=None,
              n_options=4, correct=0):
        q = Question(stem=stem, explanation=explanation, difficulty=difficulty,
                     subject_id=subject.id if subject else None, lesson_id=lesson.id if lesson else None,
                     topic_id=topic.id if topic else None, subtopic_id=subtopic.id if subtopic else None,
                     is_previous_year=pyq, year_appeared=year, status=status)
        q.options = [QuestionOption(text=f"Option {i + 1}", is_correct=(i == correct), position=i) for i in range(n_options)]
        db.add(q); db.commit()
        return q
    return _make


def correct_option(q):
    return next(o for o in q.options if o.is_correct)


def wrong_option(q):
    return next(o for o in q.options if not o.is_correct)


@pytest.fixture
def options():
    return SimpleNamespace(correct=correct_option, wrong=wrong_option)
