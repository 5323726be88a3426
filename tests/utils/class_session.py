from datetime import date

from sqlalchemy.orm import Session

from class_scheduling.crud import class_session as crud_class_session
from class_scheduling.models.class_session import ClassSession
from class_scheduling.schemas.class_session import SessionCreate
from class_scheduling.utils.time_utils import duration_minutes


def session_create(**overrides) -> SessionCreate:
    """A valid SessionCreate for course_1 / inst_1 / Room 101 on 2025-03-01 09:00-10:00."""
    data = {
        "course_id": "course_1",
        "instructor_id": "inst_1",
        "class_name": "Python Basics - Week 1",
        "scheduled_date": date(2025, 3, 1),
        "start_time": "09:00",
        "end_time": "10:00",
        "venue": "Room 101",
        "capacity": 20,
    }
    data.update(overrides)
    return SessionCreate(**data)


def session_data(**overrides) -> dict:
    """Column values for inserting a session straight through the store."""
    data = {
        "course_id": "course_1",
        "instructor_id": "inst_1",
        "class_name": "Python Basics - Week 1",
        "scheduled_date": date(2025, 3, 1),
        "start_time": "09:00",
        "end_time": "10:00",
        "venue": "Room 101",
        "capacity": 20,
        "max_enrollments": 20,
    }
    data.update(overrides)
    data["duration"] = duration_minutes(data["start_time"], data["end_time"])
    return data


def create_stored_session(db: Session, **overrides) -> ClassSession:
    return crud_class_session.create_session(
        db, data=session_data(**overrides), created_by="user_test"
    )
