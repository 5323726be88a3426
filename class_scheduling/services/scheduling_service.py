# class_scheduling/services/scheduling_service.py
"""
Scheduling facade.

Entry point for every class-session use case. Validates against the
course and user directory, serialises conflict-checked writes per
instructor/venue day, enforces the status lifecycle and delegates
enrollment, attendance, recurrence and reporting to their components.
"""
import logging
import math
import threading
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from class_scheduling.constants.session import (
    SESSION_STATUS_TRANSITIONS,
    MAX_SESSION_DURATION_MINUTES,
    EnrollmentStatus,
    SessionStatus,
    UserRole,
)
from class_scheduling.core.config import settings
from class_scheduling.core.errors import (
    InvalidStatusTransition,
    NotFound,
    SchedulingConflict,
    SchedulingError,
    ValidationError,
)
from class_scheduling.crud.crud_class_session import class_session as class_session_store
from class_scheduling.models.class_session import (
    ClassSession,
    SessionAnnouncement,
    SessionAssignment,
    SessionMaterial,
)
from class_scheduling.schemas import class_session as schemas
from class_scheduling.services.attendance_sync import AttendanceSynchronizer
from class_scheduling.services.capacity_manager import CapacityManager
from class_scheduling.services.conflict_checker import ConflictChecker
from class_scheduling.services.recurrence import RecurrenceExpander
from class_scheduling.services.reporting import ReportingService
from class_scheduling.utils.kafka_helpers import ProgressPublisher
from class_scheduling.utils.schedule_lock import (
    ScheduleLock,
    instructor_lock_key,
    venue_lock_key,
)
from class_scheduling.utils.time_utils import duration_minutes

logger = logging.getLogger(__name__)

# Fields whose change moves the session in time or space
SCHEDULE_FIELDS = ("scheduled_date", "start_time", "end_time", "instructor_id", "venue")


class SchedulingService:
    def __init__(
        self,
        directory,
        redis_client,
        publisher: ProgressPublisher,
        store=class_session_store,
        conflicts: ConflictChecker = None,
        capacity: CapacityManager = None,
        attendance: AttendanceSynchronizer = None,
        expander: RecurrenceExpander = None,
        reporting: ReportingService = None,
    ):
        self.directory = directory
        self.redis_client = redis_client
        self.store = store
        self.conflicts = conflicts or ConflictChecker(store)
        self.capacity = capacity or CapacityManager(store)
        self.attendance = attendance or AttendanceSynchronizer(publisher, store)
        self.expander = expander or RecurrenceExpander()
        self.reporting = reporting or ReportingService(directory, store)

    # --- Directory checks ---

    def _require_course(self, course_id: str) -> dict:
        course = self.directory.get_course_by_id(course_id)
        if not course:
            raise NotFound("Course not found", details={"course_id": course_id})
        return course

    def _require_instructor(self, instructor_id: str) -> dict:
        user = self.directory.get_user_by_id(instructor_id)
        if not user:
            raise NotFound("Instructor not found", details={"instructor_id": instructor_id})
        if user.get("role") not in UserRole.instructor_roles():
            raise ValidationError(
                "User is not an instructor",
                details={"instructor_id": instructor_id, "role": user.get("role")},
            )
        return user

    def _require_student(self, student_id: str) -> dict:
        user = self.directory.get_user_by_id(student_id)
        if not user:
            raise NotFound("Student not found", details={"student_id": student_id})
        if user.get("role") != UserRole.STUDENT:
            raise ValidationError(
                "User is not a student",
                details={"student_id": student_id, "role": user.get("role")},
            )
        return user

    def get_session(self, db: Session, session_id: str) -> ClassSession:
        session = self.store.get(db, session_id)
        if not session:
            raise NotFound("Class not found", details={"session_id": session_id})
        return session

    def _schedule_lock(self, instructor_id: str, venue: str, scheduled_date: date) -> ScheduleLock:
        return ScheduleLock(
            self.redis_client,
            [
                instructor_lock_key(instructor_id, scheduled_date),
                venue_lock_key(venue, scheduled_date),
            ],
        )

    # --- Create / read / update / delete ---

    def _insert(self, db: Session, data: dict, actor_id: str) -> ClassSession:
        """Conflict-check and insert under the instructor and venue day locks."""
        with self._schedule_lock(data["instructor_id"], data["venue"], data["scheduled_date"]):
            try:
                self.conflicts.ensure_available(
                    db,
                    instructor_id=data["instructor_id"],
                    venue=data["venue"],
                    scheduled_date=data["scheduled_date"],
                    start_time=data["start_time"],
                    end_time=data["end_time"],
                )
                return self.store.create_session(db, data=data, created_by=actor_id)
            except SchedulingError:
                db.rollback()
                raise
            except Exception as e:
                logger.error(f"Error creating class: {e}", exc_info=True)
                db.rollback()
                raise

    def create_session(
        self, db: Session, session_in: schemas.SessionCreate, actor_id: str
    ) -> ClassSession:
        self._require_course(session_in.course_id)
        self._require_instructor(session_in.instructor_id)

        data = session_in.model_dump(exclude={"address", "recurring_pattern"})
        data["address"] = self._address_document(session_in.address)
        data["recurring_pattern"] = (
            session_in.recurring_pattern.model_dump(mode="json")
            if session_in.recurring_pattern
            else None
        )
        data["duration"] = duration_minutes(session_in.start_time, session_in.end_time)

        session = self._insert(db, data, actor_id)
        logger.info(
            f"Class {session.id} scheduled for {session.scheduled_date} "
            f"{session.start_time}-{session.end_time} at {session.venue}"
        )
        return session

    @staticmethod
    def _address_document(address: Optional[schemas.Address]) -> Optional[dict]:
        if address is None:
            return None
        document = address.model_dump()
        if not document.get("country"):
            document["country"] = settings.DEFAULT_COUNTRY
        return document

    def list_sessions(
        self, db: Session, filters: schemas.SessionFilters
    ) -> schemas.SessionPage:
        items, total = self.store.get_multi_filtered(db, filters=filters)
        pages = math.ceil(total / filters.limit) if total else 0
        return schemas.SessionPage(
            items=[schemas.ClassSession.model_validate(item) for item in items],
            pagination=schemas.Pagination(
                page=filters.page,
                limit=filters.limit,
                total=total,
                pages=pages,
                has_next=filters.page < pages,
                has_prev=filters.page > 1,
            ),
        )

    def update_session(
        self,
        db: Session,
        session_id: str,
        session_in: schemas.SessionUpdate,
        actor_id: str,
    ) -> ClassSession:
        """
        Apply a partial update.

        Schedule changes are conflict-checked against other sessions; capacity
        changes keep max_enrollments between the enrolled count and capacity
        and promote from the waitlist when seats open.
        """
        changes = session_in.model_dump(exclude_unset=True)
        if "course_id" in changes:
            self._require_course(changes["course_id"])
        if "instructor_id" in changes:
            self._require_instructor(changes["instructor_id"])

        session = self.store.get_for_update(db, session_id)
        if not session:
            db.rollback()
            raise NotFound("Class not found", details={"session_id": session_id})

        try:
            target_status = changes.get("status") or session.status
            if "status" in changes and changes["status"] != session.status:
                self._check_transition(session, changes["status"])

            schedule_changed = any(
                field in changes and changes[field] != getattr(session, field)
                for field in SCHEDULE_FIELDS
            )
            if schedule_changed and session.status.is_terminal:
                raise ValidationError(
                    f"Cannot change the schedule of a {session.status.value} class",
                    details={"session_id": session_id},
                )

            merged = {
                field: changes.get(field, getattr(session, field)) for field in SCHEDULE_FIELDS
            }
            if "start_time" in changes or "end_time" in changes:
                minutes = duration_minutes(merged["start_time"], merged["end_time"])
                if minutes <= 0:
                    raise ValidationError("End time must be after start time")
                if minutes > MAX_SESSION_DURATION_MINUTES:
                    raise ValidationError(
                        f"Session cannot be longer than {MAX_SESSION_DURATION_MINUTES} minutes"
                    )
                changes["duration"] = minutes

            self._apply_capacity_changes(session, changes)

            if "address" in changes:
                changes["address"] = self._address_document(session_in.address)
            if "recurring_pattern" in changes:
                changes["recurring_pattern"] = (
                    session_in.recurring_pattern.model_dump(mode="json")
                    if session_in.recurring_pattern
                    else None
                )
            changes["last_modified_by"] = actor_id

            if schedule_changed and not SessionStatus(target_status).is_terminal:
                with self._schedule_lock(
                    merged["instructor_id"], merged["venue"], merged["scheduled_date"]
                ):
                    self.conflicts.ensure_available(
                        db,
                        instructor_id=merged["instructor_id"],
                        venue=merged["venue"],
                        scheduled_date=merged["scheduled_date"],
                        start_time=merged["start_time"],
                        end_time=merged["end_time"],
                        exclude_session_id=session.id,
                    )
                    session = self.store.update(db, db_obj=session, obj_in=changes)
            else:
                session = self.store.update(db, db_obj=session, obj_in=changes)
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error updating class {session_id}: {e}", exc_info=True)
            db.rollback()
            raise

        logger.info(f"Class {session_id} updated: {sorted(changes)}")
        return session

    def _apply_capacity_changes(self, session: ClassSession, changes: dict) -> None:
        """Validate capacity/max_enrollments and promote into freed seats. Mutates `changes`."""
        if "capacity" not in changes and "max_enrollments" not in changes:
            return

        capacity = changes.get("capacity", session.capacity)
        if "max_enrollments" in changes:
            max_enrollments = changes["max_enrollments"]
        else:
            # Shrinking the room clamps the enrollment limit with it
            max_enrollments = min(session.max_enrollments, capacity)

        if max_enrollments > capacity:
            raise ValidationError(
                "max_enrollments cannot exceed capacity",
                details={"capacity": capacity, "max_enrollments": max_enrollments},
            )
        enrolled = session.current_enrollments
        if max_enrollments < enrolled:
            raise ValidationError(
                "max_enrollments cannot be lower than the current enrollment count",
                details={"current_enrollments": enrolled, "max_enrollments": max_enrollments},
            )

        changes["capacity"] = capacity
        changes["max_enrollments"] = max_enrollments
        if max_enrollments > session.max_enrollments and not session.status.is_terminal:
            session.max_enrollments = max_enrollments
            self.capacity.fill_from_waitlist(session)

    def delete_session(self, db: Session, session_id: str) -> ClassSession:
        session = self.store.get_for_update(db, session_id)
        if not session:
            db.rollback()
            raise NotFound("Class not found", details={"session_id": session_id})
        enrolled = session.current_enrollments
        try:
            removed = self.store.remove(db, id=session_id)
        except Exception as e:
            logger.error(f"Error deleting class {session_id}: {e}", exc_info=True)
            db.rollback()
            raise
        logger.info(f"Class {session_id} deleted ({enrolled} enrolled)")
        return removed

    # --- Lifecycle ---

    @staticmethod
    def _check_transition(session: ClassSession, new_status: SessionStatus) -> None:
        new_status = SessionStatus(new_status)
        if new_status not in SESSION_STATUS_TRANSITIONS[session.status]:
            raise InvalidStatusTransition(session.status.value, new_status.value)

    def _transition(
        self, db: Session, session_id: str, new_status: SessionStatus, actor_id: str
    ) -> ClassSession:
        session = self.store.get_for_update(db, session_id)
        if not session:
            db.rollback()
            raise NotFound("Class not found", details={"session_id": session_id})
        try:
            self._check_transition(session, new_status)
            previous = session.status
            session = self.store.update(
                db,
                db_obj=session,
                obj_in={"status": new_status, "last_modified_by": actor_id},
            )
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error changing status of class {session_id}: {e}", exc_info=True)
            db.rollback()
            raise
        logger.info(f"Class {session_id}: {previous.value} -> {new_status.value}")
        return session

    def start_session(self, db: Session, session_id: str, actor_id: str) -> ClassSession:
        return self._transition(db, session_id, SessionStatus.IN_PROGRESS, actor_id)

    def complete_session(self, db: Session, session_id: str, actor_id: str) -> ClassSession:
        return self._transition(db, session_id, SessionStatus.COMPLETED, actor_id)

    def cancel_session(self, db: Session, session_id: str, actor_id: str) -> ClassSession:
        return self._transition(db, session_id, SessionStatus.CANCELLED, actor_id)

    def reschedule_session(
        self,
        db: Session,
        session_id: str,
        request: schemas.RescheduleRequest,
        actor_id: str,
    ) -> ClassSession:
        """Move a class to a new date, window and optionally venue. Status becomes rescheduled."""
        session = self.store.get_for_update(db, session_id)
        if not session:
            db.rollback()
            raise NotFound("Class not found", details={"session_id": session_id})

        venue = request.venue.strip() if request.venue else session.venue
        try:
            self._check_transition(session, SessionStatus.RESCHEDULED)
            with self._schedule_lock(session.instructor_id, venue, request.scheduled_date):
                self.conflicts.ensure_available(
                    db,
                    instructor_id=session.instructor_id,
                    venue=venue,
                    scheduled_date=request.scheduled_date,
                    start_time=request.start_time,
                    end_time=request.end_time,
                    exclude_session_id=session.id,
                )
                session = self.store.update(
                    db,
                    db_obj=session,
                    obj_in={
                        "scheduled_date": request.scheduled_date,
                        "start_time": request.start_time,
                        "end_time": request.end_time,
                        "duration": duration_minutes(request.start_time, request.end_time),
                        "venue": venue,
                        "status": SessionStatus.RESCHEDULED,
                        "last_modified_by": actor_id,
                    },
                )
        except SchedulingError:
            db.rollback()
            raise
        except Exception as e:
            logger.error(f"Error rescheduling class {session_id}: {e}", exc_info=True)
            db.rollback()
            raise

        logger.info(
            f"Class {session_id} rescheduled to {request.scheduled_date} "
            f"{request.start_time}-{request.end_time} at {venue}"
        )
        return session

    # --- Enrollment ---

    def enroll_student(
        self, db: Session, session_id: str, request: schemas.EnrollmentRequest
    ) -> schemas.EnrollmentResult:
        self.get_session(db, session_id)
        self._require_student(request.student_id)
        return self.capacity.enroll(
            db,
            session_id,
            request.student_id,
            desired_status=EnrollmentStatus(request.status),
            allow_waitlist=request.allow_waitlist,
        )

    def remove_student(
        self, db: Session, session_id: str, student_id: str
    ) -> schemas.RemovalResult:
        return self.capacity.remove(db, session_id, student_id)

    def auto_enroll_from_course(self, db: Session, session_id: str) -> schemas.AutoEnrollResult:
        """Enroll every active course student, collecting per-student failures."""
        session = self.get_session(db, session_id)
        student_ids = self.directory.list_active_course_students(session.course_id)

        enrolled, waitlisted, failed = [], [], []
        for student_id in student_ids:
            try:
                result = self.capacity.enroll(db, session_id, student_id)
            except SchedulingError as e:
                failed.append({"student_id": student_id, "reason": e.message})
                continue
            if result.status == EnrollmentStatus.WAITLIST:
                waitlisted.append(student_id)
            else:
                enrolled.append(student_id)

        logger.info(
            f"Auto-enrolled course {session.course_id} into {session_id}: "
            f"{len(enrolled)} enrolled, {len(waitlisted)} waitlisted, {len(failed)} failed"
        )
        return schemas.AutoEnrollResult(
            session_id=session_id, enrolled=enrolled, waitlisted=waitlisted, failed=failed
        )

    # --- Class content ---

    def _add_content(
        self, db: Session, session_id: str, collection: str, item, actor_id: str
    ) -> ClassSession:
        session = self.store.get_for_update(db, session_id)
        if not session:
            db.rollback()
            raise NotFound("Class not found", details={"session_id": session_id})
        try:
            getattr(session, collection).append(item)
            session.last_modified_by = actor_id
            db.commit()
        except Exception as e:
            logger.error(f"Error adding {collection} to class {session_id}: {e}", exc_info=True)
            db.rollback()
            raise
        logger.info(f"Added to {collection} of class {session_id}")
        return session

    def add_material(
        self, db: Session, session_id: str, material_in: schemas.MaterialIn, actor_id: str
    ) -> ClassSession:
        data = material_in.model_dump()
        if data["file_url"] is not None:
            data["file_url"] = str(data["file_url"])
        return self._add_content(db, session_id, "materials", SessionMaterial(**data), actor_id)

    def add_assignment(
        self, db: Session, session_id: str, assignment_in: schemas.AssignmentIn, actor_id: str
    ) -> ClassSession:
        assignment = SessionAssignment(
            **assignment_in.model_dump(), is_completed=False, submitted_student_ids=[]
        )
        return self._add_content(db, session_id, "assignments", assignment, actor_id)

    def add_announcement(
        self, db: Session, session_id: str, announcement_in: schemas.AnnouncementIn, actor_id: str
    ) -> ClassSession:
        announcement = SessionAnnouncement(**announcement_in.model_dump(), read_by=[])
        return self._add_content(db, session_id, "announcements", announcement, actor_id)

    # --- Attendance ---

    def mark_attendance(
        self, db: Session, session_id: str, record: schemas.AttendanceRecordIn
    ) -> ClassSession:
        return self.attendance.mark_attendance(db, session_id, record)

    def mark_bulk_attendance(
        self, db: Session, session_id: str, records: List[schemas.AttendanceRecordIn]
    ) -> ClassSession:
        return self.attendance.mark_bulk_attendance(db, session_id, records)

    def sync_progress(self, db: Session, session_id: str) -> int:
        return self.attendance.sync_progress(db, session_id)

    # --- Recurrence ---

    def generate_recurring_series(
        self,
        db: Session,
        base_session_id: str,
        end_date: date,
        actor_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> schemas.SeriesResult:
        """
        Create every occurrence of a recurring class up to end_date.

        Each occurrence is conflict-checked and committed on its own; a blocked
        occurrence is reported and the rest of the series continues.
        """
        base = self.get_session(db, base_session_id)
        plans, truncated = self.expander.expand(base, end_date)

        results = []
        for plan in plans:
            if cancel_event is not None and cancel_event.is_set():
                results.append(
                    schemas.SeriesOccurrenceResult(
                        scheduled_date=plan.scheduled_date,
                        status="skipped",
                        message="Series generation was cancelled",
                    )
                )
                continue
            try:
                created = self._insert(db, plan.data, actor_id)
            except SchedulingConflict as e:
                logger.warning(
                    f"Occurrence of {base_session_id} on {plan.scheduled_date} blocked: {e.message}"
                )
                results.append(
                    schemas.SeriesOccurrenceResult(
                        scheduled_date=plan.scheduled_date,
                        status="conflict",
                        conflict=schemas.ConflictInfo(**e.details),
                        message=e.message,
                    )
                )
            except (SchedulingError, SQLAlchemyError) as e:
                logger.warning(
                    f"Occurrence of {base_session_id} on {plan.scheduled_date} failed: {e}"
                )
                results.append(
                    schemas.SeriesOccurrenceResult(
                        scheduled_date=plan.scheduled_date,
                        status="failed",
                        message=getattr(e, "message", str(e)),
                    )
                )
            else:
                results.append(
                    schemas.SeriesOccurrenceResult(
                        scheduled_date=plan.scheduled_date,
                        status="created",
                        session_id=created.id,
                    )
                )

        created_count = sum(1 for r in results if r.status == "created")
        skipped_count = sum(1 for r in results if r.status == "skipped")
        logger.info(
            f"Series for {base_session_id} up to {end_date}: {created_count} created, "
            f"{len(results) - created_count - skipped_count} blocked, {skipped_count} skipped"
        )
        return schemas.SeriesResult(
            base_session_id=base_session_id,
            end_date=end_date,
            created=created_count,
            blocked=len(results) - created_count - skipped_count,
            skipped=skipped_count,
            truncated=truncated,
            occurrences=results,
        )

    # --- Schedules ---

    def get_instructor_schedule(
        self,
        db: Session,
        instructor_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[ClassSession]:
        return self.store.get_for_instructor(
            db, instructor_id=instructor_id, start_date=start_date, end_date=end_date
        )

    def get_student_schedule(
        self,
        db: Session,
        student_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[ClassSession]:
        return self.store.get_for_student(
            db, student_id=student_id, start_date=start_date, end_date=end_date
        )

    def get_instructor_commitments(
        self, db: Session, instructor_id: str, start_date: date, end_date: date
    ) -> List[ClassSession]:
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        return self.store.get_for_instructor(
            db,
            instructor_id=instructor_id,
            start_date=start_date,
            end_date=end_date,
            active_only=True,
        )

    # --- Reports ---

    def get_attendance_report(self, db: Session, session_id: str) -> schemas.AttendanceReport:
        return self.reporting.get_attendance_report(db, session_id)

    def get_bulk_attendance_report(
        self,
        db: Session,
        session_ids: List[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> schemas.BulkAttendanceReport:
        return self.reporting.get_bulk_attendance_report(db, session_ids, cancel_event)

    def calculate_revenue(self, db: Session, session_id: str) -> schemas.RevenueSummary:
        return self.reporting.calculate_revenue(db, session_id)

    def get_venue_availability(
        self, db: Session, venue: str, on_date: date
    ) -> schemas.VenueAvailability:
        return self.reporting.get_venue_availability(db, venue, on_date)

    def get_course_statistics(self, db: Session, course_id: str) -> schemas.CourseStatistics:
        return self.reporting.get_course_statistics(db, course_id)

    def list_upcoming_reminders(
        self, db: Session, hours_ahead: int = 24
    ) -> List[schemas.ClassReminder]:
        return self.reporting.list_upcoming_reminders(db, hours_ahead)
