import pytest

from class_scheduling.constants.session import EnrollmentStatus
from class_scheduling.core.errors import (
    AlreadyEnrolled,
    CapacityExceeded,
    NotFound,
    ValidationError,
)
from class_scheduling.schemas.class_session import EnrollmentRequest, SessionUpdate
from class_scheduling.services.capacity_manager import CapacityManager
from tests.utils.class_session import create_stored_session

manager = CapacityManager()


def _positions(session):
    return sorted(w.position for w in session.waitlist)


def test_full_class_waitlists_and_removal_promotes_head(db_session):
    session = create_stored_session(db_session, capacity=2, max_enrollments=2)

    a = manager.enroll(db_session, session.id, "stu_a")
    b = manager.enroll(db_session, session.id, "stu_b")
    c = manager.enroll(db_session, session.id, "stu_c")

    assert (a.status, a.current_enrollments) == (EnrollmentStatus.ENROLLED, 1)
    assert (b.status, b.current_enrollments) == (EnrollmentStatus.ENROLLED, 2)
    assert (c.status, c.position) == (EnrollmentStatus.WAITLIST, 1)

    removal = manager.remove(db_session, session.id, "stu_a")

    assert removal.removed is True
    assert removal.promoted_student_id == "stu_c"
    assert removal.current_enrollments == 2
    assert removal.waitlist_length == 0
    db_session.refresh(session)
    assert set(session.enrolled_student_ids) == {"stu_b", "stu_c"}
    assert session.waitlist == []


def test_remove_non_member_is_a_no_op(db_session):
    session = create_stored_session(db_session, capacity=1, max_enrollments=1)
    manager.enroll(db_session, session.id, "stu_a")

    removal = manager.remove(db_session, session.id, "stu_zz")

    assert removal.removed is False
    assert removal.promoted_student_id is None
    assert removal.current_enrollments == 1


def test_waitlist_positions_stay_dense(db_session):
    session = create_stored_session(db_session, capacity=1, max_enrollments=1)
    manager.enroll(db_session, session.id, "stu_a")
    for student in ("stu_b", "stu_c", "stu_d", "stu_e"):
        manager.enroll(db_session, session.id, student)

    manager.remove(db_session, session.id, "stu_c")
    db_session.refresh(session)
    assert _positions(session) == [1, 2, 3]
    assert [w.student_id for w in sorted(session.waitlist, key=lambda w: w.position)] == [
        "stu_b",
        "stu_d",
        "stu_e",
    ]

    # Seat frees up: head is promoted and the rest move up
    manager.remove(db_session, session.id, "stu_a")
    db_session.refresh(session)
    assert session.enrolled_student_ids == ["stu_b"]
    assert _positions(session) == [1, 2]
    assert session.current_enrollments <= session.max_enrollments


def test_duplicate_enrollment_is_rejected(db_session):
    session = create_stored_session(db_session, capacity=1, max_enrollments=1)
    manager.enroll(db_session, session.id, "stu_a")
    manager.enroll(db_session, session.id, "stu_b")

    with pytest.raises(AlreadyEnrolled):
        manager.enroll(db_session, session.id, "stu_a")
    with pytest.raises(AlreadyEnrolled):
        manager.enroll(db_session, session.id, "stu_b")


def test_full_class_without_waitlist_raises_capacity_exceeded(db_session):
    session = create_stored_session(db_session, capacity=1, max_enrollments=1)
    manager.enroll(db_session, session.id, "stu_a")

    with pytest.raises(CapacityExceeded):
        manager.enroll(db_session, session.id, "stu_b", allow_waitlist=False)

    db_session.refresh(session)
    assert session.waitlist == []


def test_explicit_waitlist_request_skips_open_seats(db_session):
    session = create_stored_session(db_session, capacity=5, max_enrollments=5)

    result = manager.enroll(
        db_session, session.id, "stu_a", desired_status=EnrollmentStatus.WAITLIST
    )

    assert result.status == EnrollmentStatus.WAITLIST
    assert result.position == 1
    assert result.current_enrollments == 0


def test_terminal_session_rejects_enrollment(service, db_session):
    session = create_stored_session(db_session)
    service.cancel_session(db_session, session.id, actor_id="user_test")

    with pytest.raises(ValidationError):
        manager.enroll(db_session, session.id, "stu_a")


def test_missing_session(db_session):
    with pytest.raises(NotFound):
        manager.enroll(db_session, "cls_missing", "stu_a")
    with pytest.raises(NotFound):
        manager.remove(db_session, "cls_missing", "stu_a")


def test_enroll_checks_student_role(service, db_session):
    session = create_stored_session(db_session)

    with pytest.raises(ValidationError):
        service.enroll_student(db_session, session.id, EnrollmentRequest(student_id="inst_1"))
    with pytest.raises(NotFound):
        service.enroll_student(db_session, session.id, EnrollmentRequest(student_id="ghost"))

    result = service.enroll_student(db_session, session.id, EnrollmentRequest(student_id="stu_a"))
    assert result.status == EnrollmentStatus.ENROLLED


def test_raising_max_enrollments_promotes_waitlist(service, db_session):
    session = create_stored_session(db_session, capacity=3, max_enrollments=1)
    for student in ("stu_a", "stu_b", "stu_c"):
        manager.enroll(db_session, session.id, student)

    updated = service.update_session(
        db_session, session.id, SessionUpdate(max_enrollments=3), actor_id="user_test"
    )

    assert updated.max_enrollments == 3
    assert set(updated.enrolled_student_ids) == {"stu_a", "stu_b", "stu_c"}
    assert updated.waitlist == []


def test_max_enrollments_cannot_drop_below_enrolled_or_exceed_capacity(service, db_session):
    session = create_stored_session(db_session, capacity=3, max_enrollments=3)
    manager.enroll(db_session, session.id, "stu_a")
    manager.enroll(db_session, session.id, "stu_b")

    with pytest.raises(ValidationError):
        service.update_session(
            db_session, session.id, SessionUpdate(max_enrollments=1), actor_id="user_test"
        )
    with pytest.raises(ValidationError):
        service.update_session(
            db_session, session.id, SessionUpdate(max_enrollments=4), actor_id="user_test"
        )
    with pytest.raises(ValidationError):
        service.update_session(
            db_session, session.id, SessionUpdate(capacity=1), actor_id="user_test"
        )

    # Shrinking the room clamps the enrollment limit with it
    updated = service.update_session(
        db_session, session.id, SessionUpdate(capacity=2), actor_id="user_test"
    )
    assert (updated.capacity, updated.max_enrollments) == (2, 2)
