"""Teacher directory rows. Roster CRUD lives outside this service; timetables only reference them."""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from schoolerp.db.session import Base


class Teacher(Base):
    __tablename__ = "teachers"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("core.schools.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    designation = Column(String(100), nullable=True)
    # e.g. ["Mathematics", "Physics"]
    subjects = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    school = relationship("School")
