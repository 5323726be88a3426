# tests/conftest.py

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from unittest.mock import MagicMock

from class_scheduling.main import app
from class_scheduling.api import deps
from class_scheduling.db.base_class import Base
from class_scheduling.services.scheduling_service import SchedulingService

# Importing the models registers every table on Base.metadata
import class_scheduling.models  # noqa: F401


# --- Test Database Setup ---
# One in-memory SQLite database shared by every connection of the pool.
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


# --- Mock Collaborators ---
USERS = {
    "inst_1": {"id": "inst_1", "role": "instructor"},
    "inst_2": {"id": "inst_2", "role": "instructor"},
    "inst_legacy": {"id": "inst_legacy", "role": "trainer"},
    "admin_1": {"id": "admin_1", "role": "admin"},
}


def _lookup_user(user_id):
    if user_id.startswith("stu_"):
        return {"id": user_id, "role": "student"}
    return USERS.get(user_id)


@pytest.fixture(scope="function")
def directory():
    """Directory where every course exists and stu_* users are students."""
    directory = MagicMock()
    directory.get_course_by_id.side_effect = lambda course_id: (
        None
        if course_id == "course_missing"
        else {"id": course_id, "title": "Python Basics", "price": 500.0, "currency": "INR"}
    )
    directory.get_user_by_id.side_effect = _lookup_user
    directory.list_active_course_students.return_value = []
    return directory


@pytest.fixture(scope="function")
def redis_client():
    """Redis stand-in whose locks are always granted."""
    client = MagicMock()
    client.lock.return_value.acquire.return_value = True
    return client


@pytest.fixture(scope="function")
def publisher():
    return MagicMock()


@pytest.fixture(scope="function")
def service(directory, redis_client, publisher):
    return SchedulingService(
        directory=directory, redis_client=redis_client, publisher=publisher
    )


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def test_client(db_session, directory, redis_client, publisher):
    """
    TestClient backed by the SQLite test database, with Redis, Kafka and
    the directory mocked. Authentication uses real JWTs.
    """

    def override_get_db():
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_redis] = lambda: redis_client
    app.dependency_overrides[deps.get_directory] = lambda: directory
    app.dependency_overrides[deps.get_progress_publisher] = lambda: publisher

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
