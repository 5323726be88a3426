# class_scheduling/schemas/class_session.py
from datetime import date, datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator

from class_scheduling.constants.session import (
    SessionStatus,
    EnrollmentStatus,
    AttendanceStatus,
    MAX_SESSION_DURATION_MINUTES,
    MIN_ENROLLMENT_LIMIT,
    MAX_ENROLLMENT_LIMIT,
)
from class_scheduling.utils.time_utils import normalize_time, duration_minutes


# --- Value objects ---

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


class _PatternBase(BaseModel):
    interval: int = Field(1, ge=1, le=12)
    end_date: Optional[date] = None


class DailyPattern(_PatternBase):
    type: Literal["daily"] = "daily"


class WeeklyPattern(_PatternBase):
    type: Literal["weekly"] = "weekly"
    # 0=Sunday .. 6=Saturday
    days_of_week: List[int] = []

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, v: List[int]) -> List[int]:
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("days_of_week entries must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(v))


class MonthlyPattern(_PatternBase):
    type: Literal["monthly"] = "monthly"


RecurringPattern = Annotated[
    Union[DailyPattern, WeeklyPattern, MonthlyPattern], Field(discriminator="type")
]


def _check_window(start_time: Optional[str], end_time: Optional[str]) -> None:
    if start_time is None or end_time is None:
        return
    minutes = duration_minutes(start_time, end_time)
    if minutes <= 0:
        raise ValueError("End time must be after start time")
    if minutes > MAX_SESSION_DURATION_MINUTES:
        raise ValueError(
            f"Session cannot be longer than {MAX_SESSION_DURATION_MINUTES} minutes"
        )


# --- Requests ---

class SessionBase(BaseModel):
    class_name: str = Field(..., min_length=1, max_length=200, json_schema_extra={"example": "Python Basics - Week 1"})
    description: Optional[str] = Field(None, max_length=1000)
    address: Optional[Address] = None
    class_notes: Optional[str] = Field(None, max_length=5000)
    summary: Optional[str] = Field(None, max_length=2000)
    objectives: Optional[List[str]] = None
    prerequisites: Optional[List[str]] = None
    required_materials: Optional[List[str]] = None
    class_price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    tags: Optional[List[str]] = None


class SessionCreate(SessionBase):
    course_id: str
    instructor_id: str
    scheduled_date: date
    start_time: str = Field(..., json_schema_extra={"example": "09:00"})
    end_time: str = Field(..., json_schema_extra={"example": "10:30"})
    venue: str = Field(..., min_length=1, max_length=200)
    capacity: int = Field(..., ge=MIN_ENROLLMENT_LIMIT, le=MAX_ENROLLMENT_LIMIT)
    max_enrollments: Optional[int] = Field(None, ge=MIN_ENROLLMENT_LIMIT, le=MAX_ENROLLMENT_LIMIT)
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time(v)

    @field_validator("venue", "class_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def check_schedule(self):
        _check_window(self.start_time, self.end_time)
        if self.max_enrollments is None:
            self.max_enrollments = self.capacity
        if self.max_enrollments > self.capacity:
            raise ValueError("max_enrollments cannot exceed capacity")
        if self.is_recurring and self.recurring_pattern is None:
            raise ValueError("recurring_pattern is required when is_recurring is true")
        return self


# Columns a partial update may omit but never clear
_NOT_NULLABLE_ON_UPDATE = (
    "class_name",
    "course_id",
    "instructor_id",
    "scheduled_date",
    "start_time",
    "end_time",
    "venue",
    "capacity",
    "max_enrollments",
    "status",
    "is_recurring",
)


class SessionUpdate(SessionBase):
    class_name: Optional[str] = Field(None, min_length=1, max_length=200)
    course_id: Optional[str] = None
    instructor_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue: Optional[str] = Field(None, min_length=1, max_length=200)
    capacity: Optional[int] = Field(None, ge=MIN_ENROLLMENT_LIMIT, le=MAX_ENROLLMENT_LIMIT)
    max_enrollments: Optional[int] = Field(None, ge=MIN_ENROLLMENT_LIMIT, le=MAX_ENROLLMENT_LIMIT)
    status: Optional[SessionStatus] = None
    is_recurring: Optional[bool] = None
    recurring_pattern: Optional[RecurringPattern] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, v: Optional[str]) -> Optional[str]:
        return normalize_time(v) if v is not None else v

    @field_validator("venue", "class_name")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v

    @model_validator(mode="after")
    def check_window(self):
        for name in _NOT_NULLABLE_ON_UPDATE:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        _check_window(self.start_time, self.end_time)
        return self


class RescheduleRequest(BaseModel):
    scheduled_date: date
    start_time: str
    end_time: str
    venue: Optional[str] = Field(None, min_length=1, max_length=200)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, v: str) -> str:
        return normalize_time(v)

    @model_validator(mode="after")
    def check_window(self):
        _check_window(self.start_time, self.end_time)
        return self


class EnrollmentRequest(BaseModel):
    student_id: str
    status: Literal["enrolled", "waitlist"] = "enrolled"
    # When false, a full session rejects the request instead of waitlisting
    allow_waitlist: bool = True


class AttendanceRecordIn(BaseModel):
    student_id: str
    status: AttendanceStatus
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_times(self):
        if self.check_in_time and self.check_out_time and self.check_out_time < self.check_in_time:
            raise ValueError("check_out_time cannot be before check_in_time")
        return self


class BulkAttendanceIn(BaseModel):
    records: List[AttendanceRecordIn]

    @field_validator("records")
    @classmethod
    def unique_students(cls, v: List[AttendanceRecordIn]) -> List[AttendanceRecordIn]:
        seen = set()
        for record in v:
            if record.student_id in seen:
                raise ValueError(f"Duplicate attendance record for student {record.student_id}")
            seen.add(record.student_id)
        return v


class MaterialIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    file_url: Optional[HttpUrl] = None
    file_type: Optional[str] = Field(None, max_length=50)
    is_required: bool = False


class AssignmentIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def due_in_future(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        if v <= datetime.now(timezone.utc):
            raise ValueError("due_date must be in the future")
        return v


class AnnouncementIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    is_urgent: bool = False


class SeriesRequest(BaseModel):
    end_date: date


class BulkReportRequest(BaseModel):
    session_ids: List[str] = Field(..., min_length=1, max_length=100)


class SessionFilters(BaseModel):
    course_id: Optional[str] = None
    instructor_id: Optional[str] = None
    status: Optional[SessionStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    venue: Optional[str] = None
    student_id: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort_by: Literal["scheduled_date", "start_time", "created_at", "class_name"] = "scheduled_date"
    sort_order: Literal["asc", "desc"] = "asc"


# --- Responses ---

class Enrollment(BaseModel):
    student_id: str
    enrolled_at: datetime
    status: EnrollmentStatus
    model_config = {"from_attributes": True}


class WaitlistEntry(BaseModel):
    student_id: str
    waitlisted_at: datetime
    position: int
    model_config = {"from_attributes": True}


class Attendance(BaseModel):
    student_id: str
    status: AttendanceStatus
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    notes: Optional[str] = None
    model_config = {"from_attributes": True}


class Material(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    file_url: Optional[str] = None
    file_type: Optional[str] = None
    is_required: bool
    created_at: datetime
    model_config = {"from_attributes": True}


class Assignment(BaseModel):
    id: str
    title: str
    description: str
    due_date: Optional[datetime] = None
    is_completed: bool
    submitted_student_ids: List[str] = []
    created_at: datetime
    model_config = {"from_attributes": True}


class Announcement(BaseModel):
    id: str
    message: str
    is_urgent: bool
    read_by: List[str] = []
    created_at: datetime
    model_config = {"from_attributes": True}


class ClassSession(BaseModel):
    id: str
    course_id: str
    instructor_id: str
    class_name: str
    description: Optional[str] = None
    scheduled_date: date
    start_time: str
    end_time: str
    duration: int
    venue: str
    address: Optional[Address] = None
    capacity: int
    max_enrollments: int
    current_enrollments: int
    status: SessionStatus
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    class_notes: Optional[str] = None
    summary: Optional[str] = None
    objectives: Optional[List[str]] = None
    prerequisites: Optional[List[str]] = None
    required_materials: Optional[List[str]] = None
    class_price: Optional[float] = None
    currency: Optional[str] = None
    tags: Optional[List[str]] = None
    enrollments: List[Enrollment] = []
    waitlist: List[WaitlistEntry] = []
    attendance: List[Attendance] = []
    materials: List[Material] = []
    assignments: List[Assignment] = []
    announcements: List[Announcement] = []
    created_by: str
    last_modified_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class SessionPage(BaseModel):
    items: List[ClassSession]
    pagination: Pagination


class EnrollmentResult(BaseModel):
    session_id: str
    student_id: str
    status: EnrollmentStatus
    # Set only when the student landed on the waitlist
    position: Optional[int] = None
    current_enrollments: int
    max_enrollments: int


class RemovalResult(BaseModel):
    session_id: str
    student_id: str
    removed: bool
    promoted_student_id: Optional[str] = None
    current_enrollments: int
    waitlist_length: int


class ConflictInfo(BaseModel):
    resource: str
    conflicting_session_id: str
    class_name: str
    scheduled_date: str
    start_time: str
    end_time: str


class SeriesOccurrenceResult(BaseModel):
    scheduled_date: date
    status: Literal["created", "conflict", "failed", "skipped"]
    session_id: Optional[str] = None
    conflict: Optional[ConflictInfo] = None
    message: Optional[str] = None


class SeriesResult(BaseModel):
    base_session_id: str
    end_date: date
    created: int
    blocked: int
    skipped: int
    truncated: bool = False
    occurrences: List[SeriesOccurrenceResult]


class AttendanceSummary(BaseModel):
    total_enrolled: int
    present: int
    absent: int
    late: int
    excused: int
    attendance_rate: float


class StudentAttendanceLine(BaseModel):
    student_id: str
    enrolled_at: datetime
    status: AttendanceStatus
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    notes: Optional[str] = None
    marked: bool


class AttendanceReport(BaseModel):
    session_id: str
    class_name: str
    scheduled_date: date
    lines: List[StudentAttendanceLine]
    summary: AttendanceSummary


class OverallAttendanceStats(BaseModel):
    total_classes: int
    total_enrolled: int
    total_present: int
    total_absent: int
    total_late: int
    total_excused: int


class BulkAttendanceReport(BaseModel):
    reports: List[AttendanceReport]
    missing_session_ids: List[str]
    overall: OverallAttendanceStats
    attendance_rate: float


class RevenueSummary(BaseModel):
    session_id: str
    enrolled_students: int
    price_per_student: float
    currency: str
    total_revenue: float
    capacity: int
    utilization_rate: float


class BookedSlot(BaseModel):
    session_id: str
    class_name: str
    start_time: str
    end_time: str
    status: SessionStatus


class VenueAvailability(BaseModel):
    venue: str
    date: date
    booked_slots: List[BookedSlot]


class StatusBreakdown(BaseModel):
    status: SessionStatus
    count: int
    total_students: int
    avg_attendance: float


class CourseStatistics(BaseModel):
    course_id: str
    total_classes: int
    upcoming_classes: int
    status_breakdown: List[StatusBreakdown]
    total_enrollments: int


class ProgressSyncResult(BaseModel):
    session_id: str
    events_published: int


class AutoEnrollResult(BaseModel):
    session_id: str
    enrolled: List[str]
    waitlisted: List[str]
    failed: List[dict]


class ClassReminder(BaseModel):
    session_id: str
    student_id: str
    class_name: str
    course_id: str
    instructor_id: str
    scheduled_date: date
    start_time: str
    venue: str
    address: Optional[Address] = None
