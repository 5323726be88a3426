from datetime import date

import pytest

from class_scheduling.constants.session import EnrollmentStatus, SessionStatus
from class_scheduling.core.errors import (
    InvalidStatusTransition,
    NotFound,
    SchedulingConflict,
    ValidationError,
)
from class_scheduling.schemas.class_session import (
    EnrollmentRequest,
    RescheduleRequest,
    SessionFilters,
    SessionUpdate,
)
from tests.utils.class_session import session_create


def test_create_session_derives_duration_and_defaults(service, db_session):
    created = service.create_session(
        db_session,
        session_create(
            start_time="9:00",
            end_time="11:30",
            address={"street": "12 MG Road", "city": "Bengaluru"},
        ),
        actor_id="user_test",
    )

    assert created.start_time == "09:00"
    assert created.duration == 150
    assert created.max_enrollments == created.capacity
    assert created.address["country"] == "India"
    assert created.created_by == "user_test"
    assert created.status == SessionStatus.SCHEDULED


def test_create_checks_course_and_instructor(service, db_session):
    with pytest.raises(NotFound):
        service.create_session(
            db_session, session_create(course_id="course_missing"), actor_id="user_test"
        )
    with pytest.raises(NotFound):
        service.create_session(
            db_session, session_create(instructor_id="ghost"), actor_id="user_test"
        )
    with pytest.raises(ValidationError):
        service.create_session(
            db_session, session_create(instructor_id="admin_1"), actor_id="user_test"
        )

    # Legacy trainer role is still accepted
    created = service.create_session(
        db_session, session_create(instructor_id="inst_legacy"), actor_id="user_test"
    )
    assert created.instructor_id == "inst_legacy"


def test_schema_rejects_bad_windows_and_limits():
    with pytest.raises(ValueError):
        session_create(start_time="10:00", end_time="10:00")
    with pytest.raises(ValueError):
        session_create(start_time="08:00", end_time="16:01")
    with pytest.raises(ValueError):
        session_create(start_time="25:00")
    with pytest.raises(ValueError):
        session_create(capacity=10, max_enrollments=11)
    with pytest.raises(ValueError):
        session_create(capacity=201)
    with pytest.raises(ValueError):
        session_create(is_recurring=True)


def test_lifecycle_happy_path(service, db_session):
    created = service.create_session(db_session, session_create(), actor_id="user_test")

    started = service.start_session(db_session, created.id, actor_id="user_ops")
    assert started.status == SessionStatus.IN_PROGRESS
    assert started.last_modified_by == "user_ops"

    completed = service.complete_session(db_session, created.id, actor_id="user_ops")
    assert completed.status == SessionStatus.COMPLETED


def test_invalid_transitions(service, db_session):
    created = service.create_session(db_session, session_create(), actor_id="user_test")

    with pytest.raises(InvalidStatusTransition):
        service.complete_session(db_session, created.id, actor_id="user_test")

    service.cancel_session(db_session, created.id, actor_id="user_test")
    with pytest.raises(InvalidStatusTransition):
        service.start_session(db_session, created.id, actor_id="user_test")
    with pytest.raises(InvalidStatusTransition):
        service.update_session(
            db_session,
            created.id,
            SessionUpdate(status=SessionStatus.SCHEDULED),
            actor_id="user_test",
        )


def test_class_in_progress_can_be_rescheduled_or_cancelled(service, db_session):
    moved = service.create_session(db_session, session_create(), actor_id="user_test")
    service.start_session(db_session, moved.id, actor_id="user_test")

    moved = service.reschedule_session(
        db_session,
        moved.id,
        RescheduleRequest(scheduled_date=date(2025, 3, 8), start_time="09:00", end_time="10:00"),
        actor_id="user_test",
    )
    assert moved.status == SessionStatus.RESCHEDULED
    assert moved.scheduled_date == date(2025, 3, 8)

    dropped = service.create_session(
        db_session, session_create(start_time="11:00", end_time="12:00"), actor_id="user_test"
    )
    service.start_session(db_session, dropped.id, actor_id="user_test")
    dropped = service.cancel_session(db_session, dropped.id, actor_id="user_test")
    assert dropped.status == SessionStatus.CANCELLED

def test_reschedule_moves_session_and_checks_conflicts(service, db_session):
    first = service.create_session(db_session, session_create(), actor_id="user_test")
    other = service.create_session(
        db_session,
        session_create(scheduled_date=date(2025, 3, 2), venue="Room 202"),
        actor_id="user_test",
    )

    # Overlapping its own old slot is fine
    moved = service.reschedule_session(
        db_session,
        first.id,
        RescheduleRequest(scheduled_date=date(2025, 3, 1), start_time="09:30", end_time="11:00"),
        actor_id="user_test",
    )
    assert moved.status == SessionStatus.RESCHEDULED
    assert (moved.start_time, moved.end_time, moved.duration) == ("09:30", "11:00", 90)

    with pytest.raises(SchedulingConflict) as exc_info:
        service.reschedule_session(
            db_session,
            first.id,
            RescheduleRequest(scheduled_date=date(2025, 3, 2), start_time="09:00", end_time="10:00"),
            actor_id="user_test",
        )
    assert exc_info.value.conflicting_session_id == other.id

    unchanged = service.get_session(db_session, first.id)
    assert unchanged.scheduled_date == date(2025, 3, 1)


def test_update_schedule_is_conflict_checked(service, db_session):
    first = service.create_session(db_session, session_create(), actor_id="user_test")
    second = service.create_session(
        db_session, session_create(start_time="11:00", end_time="12:00"), actor_id="user_test"
    )

    with pytest.raises(SchedulingConflict):
        service.update_session(
            db_session, second.id, SessionUpdate(start_time="09:30"), actor_id="user_test"
        )
    with pytest.raises(ValidationError):
        service.update_session(
            db_session, second.id, SessionUpdate(start_time="12:30"), actor_id="user_test"
        )

    updated = service.update_session(
        db_session,
        first.id,
        SessionUpdate(end_time="11:00", class_name="Python Basics - Extended"),
        actor_id="user_edit",
    )
    assert updated.duration == 120
    assert updated.class_name == "Python Basics - Extended"
    assert updated.last_modified_by == "user_edit"


def test_terminal_session_schedule_is_frozen(service, db_session):
    created = service.create_session(db_session, session_create(), actor_id="user_test")
    service.cancel_session(db_session, created.id, actor_id="user_test")

    with pytest.raises(ValidationError):
        service.update_session(
            db_session, created.id, SessionUpdate(venue="Room 999"), actor_id="user_test"
        )
    with pytest.raises(InvalidStatusTransition):
        service.reschedule_session(
            db_session,
            created.id,
            RescheduleRequest(scheduled_date=date(2025, 3, 5), start_time="09:00", end_time="10:00"),
            actor_id="user_test",
        )

    # Non-schedule fields can still change
    updated = service.update_session(
        db_session, created.id, SessionUpdate(summary="Cancelled due to holiday"), actor_id="user_test"
    )
    assert updated.summary == "Cancelled due to holiday"


def test_update_rejects_clearing_required_fields():
    with pytest.raises(ValueError):
        SessionUpdate(venue=None)


def test_delete_session_removes_children(service, db_session):
    created = service.create_session(db_session, session_create(), actor_id="user_test")
    service.capacity.enroll(db_session, created.id, "stu_a")

    service.delete_session(db_session, created.id)

    with pytest.raises(NotFound):
        service.get_session(db_session, created.id)
    with pytest.raises(NotFound):
        service.delete_session(db_session, created.id)


def test_list_sessions_paginates(service, db_session):
    for day in range(1, 4):
        service.create_session(
            db_session, session_create(scheduled_date=date(2025, 3, day)), actor_id="user_test"
        )

    page = service.list_sessions(db_session, SessionFilters(limit=2))
    assert page.pagination.total == 3
    assert page.pagination.pages == 2
    assert page.pagination.has_next is True
    assert page.pagination.has_prev is False
    assert len(page.items) == 2

    last = service.list_sessions(db_session, SessionFilters(limit=2, page=2))
    assert last.pagination.has_next is False
    assert [s.scheduled_date for s in last.items] == [date(2025, 3, 3)]


def test_auto_enroll_from_course(service, db_session, directory):
    created = service.create_session(
        db_session, session_create(capacity=2), actor_id="user_test"
    )
    service.capacity.enroll(db_session, created.id, "stu_a")
    directory.list_active_course_students.return_value = ["stu_a", "stu_b", "stu_c", "stu_d"]

    result = service.auto_enroll_from_course(db_session, created.id)

    directory.list_active_course_students.assert_called_once_with("course_1")
    assert result.enrolled == ["stu_b"]
    assert result.waitlisted == ["stu_c", "stu_d"]
    assert [f["student_id"] for f in result.failed] == ["stu_a"]


def test_schedules_and_commitments(service, db_session):
    first = service.create_session(db_session, session_create(), actor_id="user_test")
    cancelled = service.create_session(
        db_session, session_create(scheduled_date=date(2025, 3, 2)), actor_id="user_test"
    )
    service.create_session(
        db_session,
        session_create(scheduled_date=date(2025, 3, 1), start_time="07:00", end_time="08:00"),
        actor_id="user_test",
    )
    service.cancel_session(db_session, cancelled.id, actor_id="user_test")
    service.capacity.enroll(db_session, first.id, "stu_a")

    schedule = service.get_instructor_schedule(db_session, "inst_1")
    assert [(s.scheduled_date, s.start_time) for s in schedule] == [
        (date(2025, 3, 1), "07:00"),
        (date(2025, 3, 1), "09:00"),
        (date(2025, 3, 2), "09:00"),
    ]

    commitments = service.get_instructor_commitments(
        db_session, "inst_1", date(2025, 3, 1), date(2025, 3, 31)
    )
    assert cancelled.id not in [s.id for s in commitments]
    assert len(commitments) == 2

    student = service.get_student_schedule(db_session, "stu_a")
    assert [s.id for s in student] == [first.id]

    with pytest.raises(ValidationError):
        service.get_instructor_commitments(
            db_session, "inst_1", date(2025, 3, 31), date(2025, 3, 1)
        )


def test_enroll_result_reports_waitlist_position(service, db_session):
    created = service.create_session(
        db_session, session_create(capacity=1), actor_id="user_test"
    )
    service.enroll_student(db_session, created.id, EnrollmentRequest(student_id="stu_a"))
    result = service.enroll_student(db_session, created.id, EnrollmentRequest(student_id="stu_b"))

    assert result.status == EnrollmentStatus.WAITLIST
    assert result.position == 1
    assert result.current_enrollments == 1
