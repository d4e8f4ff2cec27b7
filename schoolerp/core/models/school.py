import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from schoolerp.db.session import Base


class School(Base):
    """
    Tenant (school). Its id is the isolation boundary for every timetable query and invariant.
    School records are managed elsewhere; this service only reads them.
    """

    __tablename__ = "schools"
    __table_args__ = {"schema": "core"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Human-readable public identifier (e.g. SCH-A3K9); never used as FK
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
