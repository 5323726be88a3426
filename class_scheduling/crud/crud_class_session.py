# class_scheduling/crud/crud_class_session.py
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from .base import CRUDBase
from class_scheduling.constants.session import (
    SessionStatus,
    EnrollmentStatus,
)
from class_scheduling.models.class_session import (
    ClassSession,
    SessionEnrollment,
    SessionAttendance,
)
from class_scheduling.schemas.class_session import (
    SessionCreate,
    SessionUpdate,
    SessionFilters,
)


class CRUDClassSession(CRUDBase[ClassSession, SessionCreate, SessionUpdate]):
    """
    Store access for class sessions and their embedded collections.
    """

    def get_for_update(self, db: Session, id: str) -> Optional[ClassSession]:
        """
        Load a session and take a row lock on it (SELECT ... FOR UPDATE).

        The lock is held until the caller commits or rolls back, which makes
        the enroll/remove/promote and attendance sequences exclusive per session.
        """
        return (
            db.query(self.model)
            .filter(self.model.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def create_session(self, db: Session, *, data: dict, created_by: str) -> ClassSession:
        db_obj = self.model(**data, created_by=created_by)
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def find_overlapping(
        self,
        db: Session,
        *,
        scheduled_date: date,
        start_time: str,
        end_time: str,
        instructor_id: Optional[str] = None,
        venue: Optional[str] = None,
        exclude_session_id: Optional[str] = None,
    ) -> Optional[ClassSession]:
        """
        First active session overlapping [start_time, end_time) on the date
        for the given instructor or venue.

        Times are zero-padded "HH:MM", so the string comparison is chronological.
        """
        query = db.query(self.model).filter(
            self.model.scheduled_date == scheduled_date,
            self.model.status.in_(SessionStatus.active()),
            # Half-open overlap: s1 < e2 AND s2 < e1
            self.model.start_time < end_time,
            self.model.end_time > start_time,
        )
        if instructor_id is not None:
            query = query.filter(self.model.instructor_id == instructor_id)
        if venue is not None:
            query = query.filter(self.model.venue == venue)
        if exclude_session_id is not None:
            query = query.filter(self.model.id != exclude_session_id)
        return query.order_by(self.model.start_time.asc()).first()

    def get_multi_filtered(
        self, db: Session, *, filters: SessionFilters
    ) -> Tuple[List[ClassSession], int]:
        query = db.query(self.model)

        if filters.course_id:
            query = query.filter(self.model.course_id == filters.course_id)
        if filters.instructor_id:
            query = query.filter(self.model.instructor_id == filters.instructor_id)
        if filters.status:
            query = query.filter(self.model.status == filters.status)
        if filters.venue:
            query = query.filter(
                self.model.venue.icontains(filters.venue, autoescape=True)
            )
        if filters.start_date:
            query = query.filter(self.model.scheduled_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(self.model.scheduled_date <= filters.end_date)
        if filters.student_id:
            query = query.filter(
                self.model.enrollments.any(
                    and_(
                        SessionEnrollment.student_id == filters.student_id,
                        SessionEnrollment.status == EnrollmentStatus.ENROLLED,
                    )
                )
            )

        total = query.count()

        sort_column = getattr(self.model, filters.sort_by)
        ordering = sort_column.desc() if filters.sort_order == "desc" else sort_column.asc()
        items = (
            query.order_by(ordering, self.model.start_time.asc())
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .all()
        )
        return items, total

    def get_by_venue_and_date(
        self, db: Session, *, venue: str, scheduled_date: date
    ) -> List[ClassSession]:
        """Booked (non-cancelled) sessions for a venue on one date."""
        return (
            db.query(self.model)
            .filter(
                self.model.venue == venue,
                self.model.scheduled_date == scheduled_date,
                self.model.status != SessionStatus.CANCELLED,
            )
            .order_by(self.model.start_time.asc())
            .all()
        )

    def get_for_instructor(
        self,
        db: Session,
        *,
        instructor_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        active_only: bool = False,
    ) -> List[ClassSession]:
        query = db.query(self.model).filter(self.model.instructor_id == instructor_id)
        if start_date:
            query = query.filter(self.model.scheduled_date >= start_date)
        if end_date:
            query = query.filter(self.model.scheduled_date <= end_date)
        if active_only:
            query = query.filter(self.model.status.in_(SessionStatus.active()))
        return query.order_by(
            self.model.scheduled_date.asc(), self.model.start_time.asc()
        ).all()

    def get_for_student(
        self,
        db: Session,
        *,
        student_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[ClassSession]:
        query = db.query(self.model).filter(
            self.model.enrollments.any(
                and_(
                    SessionEnrollment.student_id == student_id,
                    SessionEnrollment.status == EnrollmentStatus.ENROLLED,
                )
            )
        )
        if start_date:
            query = query.filter(self.model.scheduled_date >= start_date)
        if end_date:
            query = query.filter(self.model.scheduled_date <= end_date)
        return query.order_by(
            self.model.scheduled_date.asc(), self.model.start_time.asc()
        ).all()

    def get_scheduled_between(
        self, db: Session, *, start_date: date, end_date: date
    ) -> List[ClassSession]:
        return (
            db.query(self.model)
            .filter(
                self.model.status == SessionStatus.SCHEDULED,
                self.model.scheduled_date >= start_date,
                self.model.scheduled_date <= end_date,
            )
            .order_by(self.model.scheduled_date.asc(), self.model.start_time.asc())
            .all()
        )

    def get_status_breakdown(self, db: Session, *, course_id: str) -> list:
        """
        Per-status aggregates for a course.

        Returns rows of (status, session_count, enrolled_total, attendance_total).
        """
        enrolled = (
            db.query(
                SessionEnrollment.session_id.label("session_id"),
                func.count(SessionEnrollment.id).label("n"),
            )
            .filter(SessionEnrollment.status == EnrollmentStatus.ENROLLED)
            .group_by(SessionEnrollment.session_id)
            .subquery()
        )
        attended = (
            db.query(
                SessionAttendance.session_id.label("session_id"),
                func.count(SessionAttendance.id).label("n"),
            )
            .group_by(SessionAttendance.session_id)
            .subquery()
        )
        return (
            db.query(
                self.model.status,
                func.count(self.model.id),
                func.coalesce(func.sum(enrolled.c.n), 0),
                func.coalesce(func.sum(attended.c.n), 0),
            )
            .outerjoin(enrolled, enrolled.c.session_id == self.model.id)
            .outerjoin(attended, attended.c.session_id == self.model.id)
            .filter(self.model.course_id == course_id)
            .group_by(self.model.status)
            .all()
        )

    def count_upcoming(self, db: Session, *, course_id: str, today: date) -> int:
        return (
            db.query(self.model)
            .filter(
                self.model.course_id == course_id,
                self.model.status == SessionStatus.SCHEDULED,
                self.model.scheduled_date >= today,
            )
            .count()
        )


class_session = CRUDClassSession(ClassSession)
