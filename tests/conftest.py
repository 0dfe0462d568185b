"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from studybuddy.db.models import Base, LearnerSkill, StudyActivity  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def rng():
    """Deterministic random source for activity selection."""
    return random.Random(42)


@pytest.fixture
def make_activity(session):
    """Factory inserting a catalog activity."""

    def _make(
        skill_code="math.arithmetic.addition",
        difficulty=0.5,
        title=None,
        locale="ke",
        estimated_time_sec=120,
    ):
        activity = StudyActivity(
            skill_code=skill_code,
            title=title or f"{skill_code} practice",
            description="Practice activity",
            activity_type="quiz",
            content={"question": "2 + 3 = ?"},
            difficulty=difficulty,
            estimated_time_sec=estimated_time_sec,
            locale=locale,
        )
        session.add(activity)
        session.commit()
        return activity

    return _make


@pytest.fixture
def make_skill(session):
    """Factory inserting a learner skill row."""

    def _make(user_id, skill_code, proficiency):
        skill = LearnerSkill(user_id=user_id, skill_code=skill_code, proficiency=proficiency)
        session.add(skill)
        session.commit()
        return skill

    return _make
