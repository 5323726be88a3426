# class_scheduling/api/v1/endpoints/class_sessions.py
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from class_scheduling.api import deps
from class_scheduling.constants.session import SessionStatus
from class_scheduling.schemas import class_session as schemas
from class_scheduling.schemas.token import TokenPayload
from class_scheduling.services.scheduling_service import SchedulingService

router = APIRouter(prefix="/class-sessions", tags=["Class Sessions"])


@router.post("", response_model=schemas.ClassSession, status_code=status.HTTP_201_CREATED)
def create_class_session(
    session_in: schemas.SessionCreate,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Schedule a class after checking instructor and venue availability."""
    return service.create_session(db, session_in, actor_id=current_user.sub)


@router.get("", response_model=schemas.SessionPage)
def list_class_sessions(
    course_id: Optional[str] = None,
    instructor_id: Optional[str] = None,
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    venue: Optional[str] = None,
    student_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: Literal["scheduled_date", "start_time", "created_at", "class_name"] = "scheduled_date",
    sort_order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    filters = schemas.SessionFilters(
        course_id=course_id,
        instructor_id=instructor_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        venue=venue,
        student_id=student_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return service.list_sessions(db, filters)


# --- Cross-session views (declared before /{session_id}) ---

@router.get("/reminders/upcoming", response_model=List[schemas.ClassReminder])
def upcoming_reminders(
    hours_ahead: int = Query(24, ge=1, le=168),
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.list_upcoming_reminders(db, hours_ahead)


@router.post("/reports/attendance", response_model=schemas.BulkAttendanceReport)
def bulk_attendance_report(
    request: schemas.BulkReportRequest,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_bulk_attendance_report(db, request.session_ids)


@router.get("/venues/{venue}/availability", response_model=schemas.VenueAvailability)
def venue_availability(
    venue: str,
    on_date: date = Query(..., alias="date"),
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_venue_availability(db, venue, on_date)


@router.get("/instructors/{instructor_id}/schedule", response_model=List[schemas.ClassSession])
def instructor_schedule(
    instructor_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_instructor_schedule(db, instructor_id, start_date, end_date)


@router.get(
    "/instructors/{instructor_id}/commitments", response_model=List[schemas.ClassSession]
)
def instructor_commitments(
    instructor_id: str,
    start_date: date,
    end_date: date,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Live (not cancelled or completed) classes for an instructor in a date range."""
    return service.get_instructor_commitments(db, instructor_id, start_date, end_date)


@router.get("/students/{student_id}/schedule", response_model=List[schemas.ClassSession])
def student_schedule(
    student_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_student_schedule(db, student_id, start_date, end_date)


@router.get("/courses/{course_id}/statistics", response_model=schemas.CourseStatistics)
def course_statistics(
    course_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_course_statistics(db, course_id)


# --- Single session ---

@router.get("/{session_id}", response_model=schemas.ClassSession)
def get_class_session(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_session(db, session_id)


@router.patch("/{session_id}", response_model=schemas.ClassSession)
def update_class_session(
    session_id: str,
    session_in: schemas.SessionUpdate,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.update_session(db, session_id, session_in, actor_id=current_user.sub)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_class_session(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    service.delete_session(db, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/start", response_model=schemas.ClassSession)
def start_class_session(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.start_session(db, session_id, actor_id=current_user.sub)


@router.post("/{session_id}/complete", response_model=schemas.ClassSession)
def complete_class_session(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.complete_session(db, session_id, actor_id=current_user.sub)


@router.post("/{session_id}/cancel", response_model=schemas.ClassSession)
def cancel_class_session(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.cancel_session(db, session_id, actor_id=current_user.sub)


@router.post("/{session_id}/reschedule", response_model=schemas.ClassSession)
def reschedule_class_session(
    session_id: str,
    request: schemas.RescheduleRequest,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.reschedule_session(db, session_id, request, actor_id=current_user.sub)


@router.post(
    "/{session_id}/enrollments",
    response_model=schemas.EnrollmentResult,
    status_code=status.HTTP_201_CREATED,
)
def enroll_student(
    session_id: str,
    request: schemas.EnrollmentRequest,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Enroll a student; a full class puts them on the waitlist instead."""
    return service.enroll_student(db, session_id, request)


@router.delete("/{session_id}/enrollments/{student_id}", response_model=schemas.RemovalResult)
def remove_student(
    session_id: str,
    student_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.remove_student(db, session_id, student_id)


@router.post("/{session_id}/auto-enroll", response_model=schemas.AutoEnrollResult)
def auto_enroll(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.auto_enroll_from_course(db, session_id)


@router.post(
    "/{session_id}/materials",
    response_model=schemas.ClassSession,
    status_code=status.HTTP_201_CREATED,
)
def add_material(
    session_id: str,
    material_in: schemas.MaterialIn,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.add_material(db, session_id, material_in, actor_id=current_user.sub)


@router.post(
    "/{session_id}/assignments",
    response_model=schemas.ClassSession,
    status_code=status.HTTP_201_CREATED,
)
def add_assignment(
    session_id: str,
    assignment_in: schemas.AssignmentIn,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.add_assignment(db, session_id, assignment_in, actor_id=current_user.sub)


@router.post(
    "/{session_id}/announcements",
    response_model=schemas.ClassSession,
    status_code=status.HTTP_201_CREATED,
)
def add_announcement(
    session_id: str,
    announcement_in: schemas.AnnouncementIn,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.add_announcement(db, session_id, announcement_in, actor_id=current_user.sub)


@router.post("/{session_id}/attendance", response_model=schemas.ClassSession)
def mark_attendance(
    session_id: str,
    record: schemas.AttendanceRecordIn,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.mark_attendance(db, session_id, record)


@router.put("/{session_id}/attendance", response_model=schemas.ClassSession)
def replace_attendance(
    session_id: str,
    request: schemas.BulkAttendanceIn,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Replace the whole attendance sheet. Rejected entirely if any student is not enrolled."""
    return service.mark_bulk_attendance(db, session_id, request.records)


@router.post("/{session_id}/attendance/sync", response_model=schemas.ProgressSyncResult)
def sync_progress(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    published = service.sync_progress(db, session_id)
    return schemas.ProgressSyncResult(session_id=session_id, events_published=published)


@router.post("/{session_id}/series", response_model=schemas.SeriesResult)
def generate_series(
    session_id: str,
    request: schemas.SeriesRequest,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Create the occurrences of a recurring class up to end_date, reporting each one."""
    return service.generate_recurring_series(
        db, session_id, request.end_date, actor_id=current_user.sub
    )


@router.get("/{session_id}/attendance-report", response_model=schemas.AttendanceReport)
def attendance_report(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.get_attendance_report(db, session_id)


@router.get("/{session_id}/revenue", response_model=schemas.RevenueSummary)
def revenue(
    session_id: str,
    db: Session = Depends(deps.get_db),
    service: SchedulingService = Depends(deps.get_scheduling_service),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    return service.calculate_revenue(db, session_id)
