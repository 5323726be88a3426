# class_scheduling/services/capacity_manager.py
"""
Enrollment, waitlist and promotion for a single class session.

Every operation loads the session with a row lock and commits once, so the
enrolled count, the waitlist order and any promotion change together.
"""
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from class_scheduling.constants.session import EnrollmentStatus
from class_scheduling.core.errors import (
    AlreadyEnrolled,
    CapacityExceeded,
    NotFound,
    SchedulingError,
    ValidationError,
)
from class_scheduling.crud.crud_class_session import class_session as class_session_store
from class_scheduling.models.class_session import (
    ClassSession,
    SessionEnrollment,
    SessionWaitlistEntry,
)
from class_scheduling.schemas.class_session import EnrollmentResult, RemovalResult

logger = logging.getLogger(__name__)


class CapacityManager:
    def __init__(self, store=class_session_store):
        self.store = store

    def _load_locked(self, db: Session, session_id: str) -> ClassSession:
        session = self.store.get_for_update(db, session_id)
        if not session:
            raise NotFound("Class not found", details={"session_id": session_id})
        return session

    def enroll(
        self,
        db: Session,
        session_id: str,
        student_id: str,
        desired_status: EnrollmentStatus = EnrollmentStatus.ENROLLED,
        allow_waitlist: bool = True,
    ) -> EnrollmentResult:
        """
        Enroll a student, or waitlist them when the session is full.

        A student may appear at most once across enrollments and waitlist.

        Raises:
            NotFound: If the session does not exist
            ValidationError: If the session is completed or cancelled
            AlreadyEnrolled: If the student is enrolled or waitlisted already
            CapacityExceeded: If the session is full and waitlisting is not allowed
        """
        try:
            session = self._load_locked(db, session_id)

            if session.status.is_terminal:
                raise ValidationError(
                    f"Cannot enroll in a {session.status.value} class",
                    details={"session_id": session_id, "status": session.status.value},
                )
            if session.find_enrollment(student_id) or session.find_waitlist_entry(student_id):
                raise AlreadyEnrolled(
                    "Student is already enrolled or waitlisted for this class",
                    details={"session_id": session_id, "student_id": student_id},
                )

            wants_seat = desired_status == EnrollmentStatus.ENROLLED
            if wants_seat and session.has_open_seat:
                session.enrollments.append(
                    SessionEnrollment(
                        student_id=student_id,
                        enrolled_at=datetime.now(timezone.utc),
                        status=EnrollmentStatus.ENROLLED,
                    )
                )
                status, position = EnrollmentStatus.ENROLLED, None
            elif wants_seat and not allow_waitlist:
                raise CapacityExceeded(
                    "Class is full",
                    details={
                        "session_id": session_id,
                        "max_enrollments": session.max_enrollments,
                    },
                )
            else:
                position = len(session.waitlist) + 1
                session.waitlist.append(
                    SessionWaitlistEntry(
                        student_id=student_id,
                        waitlisted_at=datetime.now(timezone.utc),
                        position=position,
                    )
                )
                status = EnrollmentStatus.WAITLIST

            db.commit()
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error enrolling {student_id} in {session_id}: {e}", exc_info=True)
            db.rollback()
            raise

        if status == EnrollmentStatus.WAITLIST:
            logger.info(f"Student {student_id} waitlisted for {session_id} at position {position}")
        else:
            logger.info(f"Student {student_id} enrolled in {session_id}")

        return EnrollmentResult(
            session_id=session.id,
            student_id=student_id,
            status=status,
            position=position,
            current_enrollments=session.current_enrollments,
            max_enrollments=session.max_enrollments,
        )

    def remove(self, db: Session, session_id: str, student_id: str) -> RemovalResult:
        """
        Remove a student from the enrollments and the waitlist.

        Idempotent: removing a student who holds neither is a no-op. When a
        seat opens on a live session, the waitlist head is promoted.
        """
        try:
            session = self._load_locked(db, session_id)

            enrollment = session.find_enrollment(student_id)
            entry = session.find_waitlist_entry(student_id)
            removed = enrollment is not None or entry is not None

            promoted: List[str] = []
            if removed:
                if enrollment is not None:
                    session.enrollments.remove(enrollment)
                if entry is not None:
                    session.waitlist.remove(entry)
                    self._renumber(session)
                if not session.status.is_terminal:
                    promoted = self.fill_from_waitlist(session)
            # Also ends the transaction on a no-op, releasing the row lock
            db.commit()
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error removing {student_id} from {session_id}: {e}", exc_info=True)
            db.rollback()
            raise

        if removed:
            logger.info(f"Student {student_id} removed from {session_id}")

        return RemovalResult(
            session_id=session.id,
            student_id=student_id,
            removed=removed,
            promoted_student_id=promoted[0] if promoted else None,
            current_enrollments=session.current_enrollments,
            waitlist_length=len(session.waitlist),
        )

    def fill_from_waitlist(self, session: ClassSession) -> List[str]:
        """
        Promote waitlist heads while seats are open. Does not commit.

        Returns:
            The promoted student ids, in promotion order
        """
        promoted = []
        while session.has_open_seat and session.waitlist:
            head = min(session.waitlist, key=lambda w: w.position)
            session.waitlist.remove(head)
            session.enrollments.append(
                SessionEnrollment(
                    student_id=head.student_id,
                    enrolled_at=datetime.now(timezone.utc),
                    status=EnrollmentStatus.ENROLLED,
                )
            )
            promoted.append(head.student_id)
            logger.info(f"Promoted {head.student_id} from waitlist of {session.id}")
        if promoted:
            self._renumber(session)
        return promoted

    @staticmethod
    def _renumber(session: ClassSession) -> None:
        """Rewrite waitlist positions as 1..N in queue order."""
        ordered = sorted(session.waitlist, key=lambda w: w.position)
        for index, entry in enumerate(ordered, start=1):
            entry.position = index
