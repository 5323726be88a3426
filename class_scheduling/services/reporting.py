# class_scheduling/services/reporting.py
"""
Read-only reports over class sessions: attendance, revenue, venue usage,
course statistics and upcoming reminders.
"""
import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from class_scheduling.constants.session import AttendanceStatus, EnrollmentStatus
from class_scheduling.core.config import settings
from class_scheduling.core.errors import NotFound
from class_scheduling.crud.crud_class_session import class_session as class_session_store
from class_scheduling.models.class_session import ClassSession
from class_scheduling.schemas import class_session as schemas

logger = logging.getLogger(__name__)


def _rate(attended: int, total: int) -> float:
    return round(attended / total * 100, 2) if total else 0.0


class ReportingService:
    def __init__(self, directory, store=class_session_store):
        self.directory = directory
        self.store = store

    def _get(self, db: Session, session_id: str) -> ClassSession:
        session = self.store.get(db, session_id)
        if not session:
            raise NotFound("Class not found", details={"session_id": session_id})
        return session

    @staticmethod
    def build_attendance_report(session: ClassSession) -> schemas.AttendanceReport:
        """
        One line per enrolled student. Students with no record count as absent.
        """
        lines = []
        counts = {status: 0 for status in AttendanceStatus}
        for enrollment in session.enrollments:
            if enrollment.status != EnrollmentStatus.ENROLLED:
                continue
            record = session.find_attendance(enrollment.student_id)
            status = record.status if record else AttendanceStatus.ABSENT
            counts[status] += 1
            lines.append(
                schemas.StudentAttendanceLine(
                    student_id=enrollment.student_id,
                    enrolled_at=enrollment.enrolled_at,
                    status=status,
                    check_in_time=record.check_in_time if record else None,
                    check_out_time=record.check_out_time if record else None,
                    notes=record.notes if record else None,
                    marked=record is not None,
                )
            )

        total = len(lines)
        attended = counts[AttendanceStatus.PRESENT] + counts[AttendanceStatus.LATE]
        return schemas.AttendanceReport(
            session_id=session.id,
            class_name=session.class_name,
            scheduled_date=session.scheduled_date,
            lines=lines,
            summary=schemas.AttendanceSummary(
                total_enrolled=total,
                present=counts[AttendanceStatus.PRESENT],
                absent=counts[AttendanceStatus.ABSENT],
                late=counts[AttendanceStatus.LATE],
                excused=counts[AttendanceStatus.EXCUSED],
                attendance_rate=_rate(attended, total),
            ),
        )

    def get_attendance_report(self, db: Session, session_id: str) -> schemas.AttendanceReport:
        return self.build_attendance_report(self._get(db, session_id))

    def get_bulk_attendance_report(
        self,
        db: Session,
        session_ids: List[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> schemas.BulkAttendanceReport:
        reports = []
        missing = []
        for session_id in session_ids:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Bulk attendance report cancelled")
                break
            session = self.store.get(db, session_id)
            if not session:
                logger.warning(f"Class {session_id} not found, skipping from bulk report")
                missing.append(session_id)
                continue
            reports.append(self.build_attendance_report(session))

        overall = schemas.OverallAttendanceStats(
            total_classes=len(reports),
            total_enrolled=sum(r.summary.total_enrolled for r in reports),
            total_present=sum(r.summary.present for r in reports),
            total_absent=sum(r.summary.absent for r in reports),
            total_late=sum(r.summary.late for r in reports),
            total_excused=sum(r.summary.excused for r in reports),
        )
        return schemas.BulkAttendanceReport(
            reports=reports,
            missing_session_ids=missing,
            overall=overall,
            attendance_rate=_rate(
                overall.total_present + overall.total_late, overall.total_enrolled
            ),
        )

    def calculate_revenue(self, db: Session, session_id: str) -> schemas.RevenueSummary:
        session = self._get(db, session_id)

        price = session.class_price
        currency = session.currency
        if price is None or currency is None:
            course = self.directory.get_course_by_id(session.course_id) or {}
            if price is None:
                price = course.get("price")
            if currency is None:
                currency = course.get("currency")
        price = float(price or 0)
        currency = currency or settings.DEFAULT_CURRENCY

        enrolled = session.current_enrollments
        return schemas.RevenueSummary(
            session_id=session.id,
            enrolled_students=enrolled,
            price_per_student=price,
            currency=currency,
            total_revenue=round(enrolled * price, 2),
            capacity=session.capacity,
            utilization_rate=_rate(enrolled, session.capacity),
        )

    def get_venue_availability(
        self, db: Session, venue: str, on_date: date
    ) -> schemas.VenueAvailability:
        booked = self.store.get_by_venue_and_date(db, venue=venue, scheduled_date=on_date)
        return schemas.VenueAvailability(
            venue=venue,
            date=on_date,
            booked_slots=[
                schemas.BookedSlot(
                    session_id=s.id,
                    class_name=s.class_name,
                    start_time=s.start_time,
                    end_time=s.end_time,
                    status=s.status,
                )
                for s in booked
            ],
        )

    def get_course_statistics(
        self, db: Session, course_id: str, today: Optional[date] = None
    ) -> schemas.CourseStatistics:
        today = today or datetime.now(timezone.utc).date()
        rows = self.store.get_status_breakdown(db, course_id=course_id)

        breakdown = [
            schemas.StatusBreakdown(
                status=status,
                count=count,
                total_students=int(enrolled_total),
                avg_attendance=round(int(attendance_total) / count, 2) if count else 0.0,
            )
            for status, count, enrolled_total, attendance_total in rows
        ]
        return schemas.CourseStatistics(
            course_id=course_id,
            total_classes=sum(b.count for b in breakdown),
            upcoming_classes=self.store.count_upcoming(db, course_id=course_id, today=today),
            status_breakdown=breakdown,
            total_enrollments=sum(b.total_students for b in breakdown),
        )

    def list_upcoming_reminders(
        self, db: Session, hours_ahead: int = 24, now: Optional[datetime] = None
    ) -> List[schemas.ClassReminder]:
        """
        One reminder per enrolled student for scheduled classes starting
        within the next `hours_ahead` hours. Class times are read as UTC.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now + timedelta(hours=hours_ahead)
        sessions = self.store.get_scheduled_between(
            db, start_date=now.date(), end_date=cutoff.date()
        )

        reminders = []
        for session in sessions:
            hours, minutes = session.start_time.split(":")
            starts_at = datetime.combine(
                session.scheduled_date,
                datetime.min.time(),
                tzinfo=timezone.utc,
            ) + timedelta(hours=int(hours), minutes=int(minutes))
            if not (now <= starts_at <= cutoff):
                continue
            for student_id in session.enrolled_student_ids:
                reminders.append(
                    schemas.ClassReminder(
                        session_id=session.id,
                        student_id=student_id,
                        class_name=session.class_name,
                        course_id=session.course_id,
                        instructor_id=session.instructor_id,
                        scheduled_date=session.scheduled_date,
                        start_time=session.start_time,
                        venue=session.venue,
                        address=session.address,
                    )
                )
        logger.info(f"{len(reminders)} class reminders due in the next {hours_ahead}h")
        return reminders
