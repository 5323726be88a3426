# class_scheduling/models/class_session.py
"""
Class session model with its enrollment, waitlist, attendance and
content (materials, assignments, announcements) collections.

A ClassSession is one scheduled occurrence of a course class at a specific
date, time window and venue. The embedded collections of the session
document are child tables that cascade with their parent session.
"""

import uuid
from datetime import datetime, timezone as tz
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    Date,
    DateTime,
    Enum,
    Numeric,
    Text,
    JSON,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship

from class_scheduling.db.base_class import Base
from class_scheduling.constants.session import (
    SessionStatus,
    EnrollmentStatus,
    AttendanceStatus,
)


def _utcnow() -> datetime:
    return datetime.now(tz.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ClassSession(Base):
    __tablename__ = "class_sessions"

    id = Column(
        String, primary_key=True, default=lambda: f"cls_{uuid.uuid4().hex[:12]}"
    )
    course_id = Column(String, nullable=False, index=True)
    instructor_id = Column(String, nullable=False, index=True)
    class_name = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)

    # Scheduling (times are zero-padded "HH:MM", same day only)
    scheduled_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False)  # Derived: minutes between start and end

    # Location
    venue = Column(String(200), nullable=False, index=True)
    address = Column(JSON, nullable=True)

    # Capacity
    capacity = Column(Integer, nullable=False)  # Physical room limit
    max_enrollments = Column(Integer, nullable=False)  # Enrollment limit, defaults to capacity

    status = Column(
        Enum(
            SessionStatus,
            name="class_session_status",
            values_callable=_enum_values,
            native_enum=False,
        ),
        nullable=False,
        default=SessionStatus.SCHEDULED,
    )

    # Recurrence (pattern is a tagged JSON document, see schemas.class_session)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_pattern = Column(JSON, nullable=True)

    # Teaching content carried over to every occurrence of a series
    class_notes = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    objectives = Column(JSON, nullable=True)
    prerequisites = Column(JSON, nullable=True)
    required_materials = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)

    # Pricing (overrides the course price when set)
    class_price = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    currency = Column(String(3), nullable=True)

    # Audit
    created_by = Column(String, nullable=False)
    last_modified_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    enrollments = relationship(
        "SessionEnrollment",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionEnrollment.enrolled_at",
        lazy="selectin",
    )
    waitlist = relationship(
        "SessionWaitlistEntry",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionWaitlistEntry.position",
        lazy="selectin",
    )
    attendance = relationship(
        "SessionAttendance",
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    materials = relationship(
        "SessionMaterial",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionMaterial.created_at",
        lazy="selectin",
    )
    assignments = relationship(
        "SessionAssignment",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionAssignment.created_at",
        lazy="selectin",
    )
    announcements = relationship(
        "SessionAnnouncement",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionAnnouncement.created_at",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_class_sessions_instructor_date", "instructor_id", "scheduled_date"),
        Index("ix_class_sessions_venue_date", "venue", "scheduled_date"),
        Index("ix_class_sessions_status_date", "status", "scheduled_date"),
        Index("ix_class_sessions_course_date", "course_id", "scheduled_date"),
    )

    @property
    def current_enrollments(self) -> int:
        """Number of enrolled-status records; never stored independently."""
        return sum(
            1 for e in self.enrollments if e.status == EnrollmentStatus.ENROLLED
        )

    @property
    def enrolled_student_ids(self) -> list[str]:
        return [
            e.student_id
            for e in self.enrollments
            if e.status == EnrollmentStatus.ENROLLED
        ]

    @property
    def has_open_seat(self) -> bool:
        return self.current_enrollments < self.max_enrollments

    def is_enrolled(self, student_id: str) -> bool:
        return student_id in self.enrolled_student_ids

    def find_enrollment(self, student_id: str):
        return next((e for e in self.enrollments if e.student_id == student_id), None)

    def find_waitlist_entry(self, student_id: str):
        return next((w for w in self.waitlist if w.student_id == student_id), None)

    def find_attendance(self, student_id: str):
        return next((a for a in self.attendance if a.student_id == student_id), None)


class SessionEnrollment(Base):
    __tablename__ = "class_session_enrollments"

    id = Column(
        String, primary_key=True, default=lambda: f"cen_{uuid.uuid4().hex[:12]}"
    )
    session_id = Column(
        String, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(String, nullable=False, index=True)  # No FK - users live in another service
    enrolled_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    status = Column(
        Enum(
            EnrollmentStatus,
            name="class_enrollment_status",
            values_callable=_enum_values,
            native_enum=False,
        ),
        nullable=False,
        default=EnrollmentStatus.ENROLLED,
    )

    session = relationship("ClassSession", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="unique_class_enrollment_student"),
    )


class SessionWaitlistEntry(Base):
    __tablename__ = "class_session_waitlist"

    id = Column(
        String, primary_key=True, default=lambda: f"cwl_{uuid.uuid4().hex[:12]}"
    )
    session_id = Column(
        String, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(String, nullable=False, index=True)
    waitlisted_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    position = Column(Integer, nullable=False)  # 1-based, dense

    session = relationship("ClassSession", back_populates="waitlist")

    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="unique_class_waitlist_student"),
    )


class SessionAttendance(Base):
    __tablename__ = "class_session_attendance"

    id = Column(
        String, primary_key=True, default=lambda: f"cat_{uuid.uuid4().hex[:12]}"
    )
    session_id = Column(
        String, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    student_id = Column(String, nullable=False, index=True)
    status = Column(
        Enum(
            AttendanceStatus,
            name="class_attendance_status",
            values_callable=_enum_values,
            native_enum=False,
        ),
        nullable=False,
    )
    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(String(500), nullable=True)

    session = relationship("ClassSession", back_populates="attendance")

    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="unique_class_attendance_student"),
    )


class SessionMaterial(Base):
    __tablename__ = "class_session_materials"

    id = Column(
        String, primary_key=True, default=lambda: f"cmt_{uuid.uuid4().hex[:12]}"
    )
    session_id = Column(
        String, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(200), nullable=False)
    description = Column(String(500), nullable=True)
    file_url = Column(String, nullable=True)
    file_type = Column(String(50), nullable=True)
    is_required = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session = relationship("ClassSession", back_populates="materials")


class SessionAssignment(Base):
    __tablename__ = "class_session_assignments"

    id = Column(
        String, primary_key=True, default=lambda: f"cas_{uuid.uuid4().hex[:12]}"
    )
    session_id = Column(
        String, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True)
    is_completed = Column(Boolean, nullable=False, default=False)
    submitted_student_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session = relationship("ClassSession", back_populates="assignments")


class SessionAnnouncement(Base):
    __tablename__ = "class_session_announcements"

    id = Column(
        String, primary_key=True, default=lambda: f"can_{uuid.uuid4().hex[:12]}"
    )
    session_id = Column(
        String, ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message = Column(String(1000), nullable=False)
    is_urgent = Column(Boolean, nullable=False, default=False)
    read_by = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    session = relationship("ClassSession", back_populates="announcements")
