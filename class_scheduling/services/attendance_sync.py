# class_scheduling/services/attendance_sync.py
"""
Attendance recording and course-progress propagation.

A record that newly counts as attended (present or late) credits the
student with one lesson and the session's duration in hours. Events are
published only after the attendance change is committed.
"""
import logging
from typing import Iterable, List

from sqlalchemy.orm import Session

from class_scheduling.constants.session import SessionStatus
from class_scheduling.core.errors import NotEnrolled, NotFound, SchedulingError, ValidationError
from class_scheduling.crud.crud_class_session import class_session as class_session_store
from class_scheduling.models.class_session import ClassSession, SessionAttendance
from class_scheduling.schemas.class_session import AttendanceRecordIn
from class_scheduling.utils.kafka_helpers import ProgressEvent, ProgressPublisher

logger = logging.getLogger(__name__)


def _counts(record) -> bool:
    return record is not None and record.status.counts_as_attended


class AttendanceSynchronizer:
    def __init__(self, publisher: ProgressPublisher, store=class_session_store):
        self.publisher = publisher
        self.store = store

    def _load_locked(self, db: Session, session_id: str) -> ClassSession:
        session = self.store.get_for_update(db, session_id)
        if not session:
            raise NotFound("Class not found", details={"session_id": session_id})
        if session.status == SessionStatus.CANCELLED:
            raise ValidationError(
                "Cannot record attendance for a cancelled class",
                details={"session_id": session_id},
            )
        return session

    @staticmethod
    def _apply(session: ClassSession, record: AttendanceRecordIn) -> bool:
        """
        Insert or update one student's record in place.

        Returns:
            True if the record now counts as attended and did not before
        """
        existing = session.find_attendance(record.student_id)
        counted_before = _counts(existing)
        if existing is None:
            existing = SessionAttendance(student_id=record.student_id)
            session.attendance.append(existing)
        existing.status = record.status
        existing.check_in_time = record.check_in_time
        existing.check_out_time = record.check_out_time
        existing.notes = record.notes
        return record.status.counts_as_attended and not counted_before

    def mark_attendance(
        self, db: Session, session_id: str, record: AttendanceRecordIn
    ) -> ClassSession:
        """
        Record attendance for one enrolled student.

        Raises:
            NotFound: If the session does not exist
            NotEnrolled: If the student holds no enrolled seat
        """
        try:
            session = self._load_locked(db, session_id)
            if not session.is_enrolled(record.student_id):
                raise NotEnrolled(record.student_id, session_id)
            newly_counted = self._apply(session, record)
            db.commit()
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error marking attendance for {session_id}: {e}", exc_info=True)
            db.rollback()
            raise

        logger.info(
            f"Attendance for {record.student_id} in {session_id}: {record.status.value}"
        )
        if newly_counted:
            self._emit(session, [record.student_id])
        return session

    def mark_bulk_attendance(
        self, db: Session, session_id: str, records: List[AttendanceRecordIn]
    ) -> ClassSession:
        """
        Replace the session's attendance with `records`, all or nothing.

        Every student is validated before anything is written; the first
        non-enrolled student aborts the whole batch. Students not named in
        `records` lose their attendance record.
        """
        try:
            session = self._load_locked(db, session_id)
            for record in records:
                if not session.is_enrolled(record.student_id):
                    raise NotEnrolled(record.student_id, session_id)

            keep = {record.student_id for record in records}
            for stale in [a for a in session.attendance if a.student_id not in keep]:
                session.attendance.remove(stale)

            newly_counted = [
                record.student_id for record in records if self._apply(session, record)
            ]
            db.commit()
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error replacing attendance for {session_id}: {e}", exc_info=True)
            db.rollback()
            raise

        logger.info(f"Attendance replaced for {session_id}: {len(records)} records")
        self._emit(session, newly_counted)
        return session

    def sync_progress(self, db: Session, session_id: str) -> int:
        """
        Re-publish progress for every attended record of the session.

        Returns:
            Number of events handed to the publisher
        """
        session = self.store.get(db, session_id)
        if not session:
            raise NotFound("Class not found", details={"session_id": session_id})
        attended = [a.student_id for a in session.attendance if _counts(a)]
        return self._emit(session, attended)

    def _emit(self, session: ClassSession, student_ids: Iterable[str]) -> int:
        hours = round(session.duration / 60, 2)
        sent = 0
        for student_id in student_ids:
            event = ProgressEvent(
                course_id=session.course_id,
                student_id=student_id,
                session_id=session.id,
                lessons_delta=1,
                hours_delta=hours,
            )
            try:
                self.publisher.publish(event)
                sent += 1
            except Exception as e:
                # One student's progress must not block the others
                logger.warning(f"Progress update for student {student_id} failed: {e}")
        return sent
