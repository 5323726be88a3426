# Import all models so SQLAlchemy can resolve relationships and
# Base.metadata sees every table.

from class_scheduling.db.base_class import Base
from class_scheduling.models.class_session import (
    ClassSession,
    SessionEnrollment,
    SessionWaitlistEntry,
    SessionAttendance,
    SessionMaterial,
    SessionAssignment,
    SessionAnnouncement,
)
