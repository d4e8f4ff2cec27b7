"""Timetable entry (source of truth). One class/section, subject and teacher on a weekday time range."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from schoolerp.db.session import Base


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"
    __table_args__ = (
        # Exact duplicate slots are rejected by the database as well; overlaps are checked by the service
        UniqueConstraint(
            "school_id", "teacher_id", "day", "start_time", "end_time",
            name="uq_timetable_teacher_slot",
        ),
        UniqueConstraint(
            "school_id", "class_name", "section", "day", "start_time", "end_time",
            name="uq_timetable_class_slot",
        ),
        Index("ix_timetable_school_day", "school_id", "day"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False)
    class_name = Column(String(100), nullable=False)
    # "" for classes without sections; compared literally
    section = Column(String(50), nullable=False, default="")
    subject_name = Column(String(150), nullable=False)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("school.teachers.id", ondelete="RESTRICT"), nullable=False)
    day = Column(String(10), nullable=False)  # monday .. sunday, lower-case
    start_time = Column(String(5), nullable=False)  # zero-padded HH:MM
    end_time = Column(String(5), nullable=False)
    room_number = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school = relationship("School", lazy="joined")
    teacher = relationship("Teacher", lazy="joined")
