# class_scheduling/core/errors.py
"""
Error taxonomy for the scheduling engine.

Services raise these exceptions; the HTTP layer renders them through a
single exception handler using `code`, `status_code` and `details`.
"""
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for every error the engine reports to its callers."""

    code = "SCHEDULING_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFound(SchedulingError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(SchedulingError):
    code = "VALIDATION_ERROR"
    status_code = 422


class InvalidStatusTransition(ValidationError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            f"Invalid status transition: {current_status} → {new_status}",
            details={"from": current_status, "to": new_status},
        )


class SchedulingConflict(SchedulingError):
    """An instructor or venue is already booked for an overlapping window."""

    code = "SCHEDULING_CONFLICT"
    status_code = 409

    def __init__(
        self,
        resource: str,
        conflicting_session_id: str,
        class_name: str,
        scheduled_date: str,
        start_time: str,
        end_time: str,
    ):
        if resource == "instructor":
            message = (
                f"Instructor has a conflicting class: {class_name} "
                f"on {scheduled_date} at {start_time}-{end_time}"
            )
        else:
            message = (
                f"Venue is already booked: {class_name} "
                f"on {scheduled_date} at {start_time}-{end_time}"
            )
        super().__init__(
            message,
            details={
                "resource": resource,
                "conflicting_session_id": conflicting_session_id,
                "class_name": class_name,
                "scheduled_date": scheduled_date,
                "start_time": start_time,
                "end_time": end_time,
            },
        )
        self.resource = resource
        self.conflicting_session_id = conflicting_session_id


class AlreadyEnrolled(SchedulingError):
    code = "ALREADY_ENROLLED"
    status_code = 409


class NotEnrolled(SchedulingError):
    code = "NOT_ENROLLED"
    status_code = 400

    def __init__(self, student_id: str, session_id: str):
        super().__init__(
            f"Student {student_id} is not enrolled in this class",
            details={"student_id": student_id, "session_id": session_id},
        )
        self.student_id = student_id


class CapacityExceeded(SchedulingError):
    code = "CAPACITY_EXCEEDED"
    status_code = 409


class ScheduleBusy(SchedulingError):
    """A scheduling lock could not be taken within the configured wait."""

    code = "SCHEDULE_BUSY"
    status_code = 503


class UpstreamServiceError(SchedulingError):
    code = "UPSTREAM_SERVICE_ERROR"
    status_code = 502
