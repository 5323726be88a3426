# class_scheduling/constants/session.py
"""
Status and pattern vocabularies for class sessions.
"""
import enum


class SessionStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"

    @classmethod
    def terminal(cls) -> set["SessionStatus"]:
        """Statuses after which no conflict checks or promotions apply."""
        return {cls.COMPLETED, cls.CANCELLED}

    @classmethod
    def active(cls) -> list["SessionStatus"]:
        """Statuses that take part in instructor/venue conflict detection."""
        return [cls.SCHEDULED, cls.IN_PROGRESS, cls.RESCHEDULED]

    @property
    def is_terminal(self) -> bool:
        return self in SessionStatus.terminal()


# Allowed lifecycle moves. Completed and cancelled are terminal.
SESSION_STATUS_TRANSITIONS = {
    SessionStatus.SCHEDULED: {
        SessionStatus.IN_PROGRESS,
        SessionStatus.CANCELLED,
        SessionStatus.RESCHEDULED,
    },
    SessionStatus.RESCHEDULED: {
        SessionStatus.IN_PROGRESS,
        SessionStatus.CANCELLED,
        SessionStatus.RESCHEDULED,
    },
    SessionStatus.IN_PROGRESS: {
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.RESCHEDULED,
    },
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELLED: set(),
}


class EnrollmentStatus(str, enum.Enum):
    ENROLLED = "enrolled"
    WAITLIST = "waitlist"
    CANCELLED = "cancelled"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"

    @property
    def counts_as_attended(self) -> bool:
        """Present and late students are credited with a completed lesson."""
        return self in (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


class RecurrenceType(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class UserRole:
    """Roles the scheduling engine checks on directory users."""
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    # Older user records still carry the legacy trainer role.
    TRAINER = "trainer"

    @classmethod
    def instructor_roles(cls) -> set[str]:
        return {cls.INSTRUCTOR, cls.TRAINER}


MAX_SESSION_DURATION_MINUTES = 480
MIN_ENROLLMENT_LIMIT = 1
MAX_ENROLLMENT_LIMIT = 200
