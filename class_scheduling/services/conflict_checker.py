# class_scheduling/services/conflict_checker.py
"""
Instructor and venue double-booking detection.

Two sessions on the same date conflict when their half-open windows
[start, end) overlap and neither is cancelled or completed.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from class_scheduling.core.errors import SchedulingConflict, ValidationError
from class_scheduling.crud.crud_class_session import class_session as class_session_store
from class_scheduling.models.class_session import ClassSession

logger = logging.getLogger(__name__)

INSTRUCTOR = "instructor"
VENUE = "venue"


class ConflictChecker:
    def __init__(self, store=class_session_store):
        self.store = store

    def find_conflict(
        self,
        db: Session,
        *,
        resource: str,
        subject_id: str,
        scheduled_date: date,
        start_time: str,
        end_time: str,
        exclude_session_id: Optional[str] = None,
    ) -> Optional[ClassSession]:
        """Return the first active session colliding with the window, if any."""
        if resource == INSTRUCTOR:
            return self.store.find_overlapping(
                db,
                scheduled_date=scheduled_date,
                start_time=start_time,
                end_time=end_time,
                instructor_id=subject_id,
                exclude_session_id=exclude_session_id,
            )
        if resource == VENUE:
            return self.store.find_overlapping(
                db,
                scheduled_date=scheduled_date,
                start_time=start_time,
                end_time=end_time,
                venue=subject_id,
                exclude_session_id=exclude_session_id,
            )
        raise ValidationError(f"Unknown conflict resource '{resource}'")

    def has_conflict(
        self,
        db: Session,
        *,
        resource: str,
        subject_id: str,
        scheduled_date: date,
        start_time: str,
        end_time: str,
        exclude_session_id: Optional[str] = None,
    ) -> bool:
        return (
            self.find_conflict(
                db,
                resource=resource,
                subject_id=subject_id,
                scheduled_date=scheduled_date,
                start_time=start_time,
                end_time=end_time,
                exclude_session_id=exclude_session_id,
            )
            is not None
        )

    def ensure_available(
        self,
        db: Session,
        *,
        instructor_id: str,
        venue: str,
        scheduled_date: date,
        start_time: str,
        end_time: str,
        exclude_session_id: Optional[str] = None,
    ) -> None:
        """
        Check the instructor first, then the venue.

        Raises:
            SchedulingConflict: Naming the colliding session and its window
        """
        for resource, subject_id in ((INSTRUCTOR, instructor_id), (VENUE, venue)):
            clash = self.find_conflict(
                db,
                resource=resource,
                subject_id=subject_id,
                scheduled_date=scheduled_date,
                start_time=start_time,
                end_time=end_time,
                exclude_session_id=exclude_session_id,
            )
            if clash is not None:
                logger.info(
                    f"{resource.capitalize()} conflict for {subject_id} on {scheduled_date} "
                    f"{start_time}-{end_time}: collides with session {clash.id}"
                )
                raise SchedulingConflict(
                    resource=resource,
                    conflicting_session_id=clash.id,
                    class_name=clash.class_name,
                    scheduled_date=clash.scheduled_date.isoformat(),
                    start_time=clash.start_time,
                    end_time=clash.end_time,
                )
