"""Appointment model definitions."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, String, Time, text

from backend.database import Base


class AppointmentStatus(str, enum.Enum):
    """Closed set of appointment lifecycle states."""

    SCHEDULED = "SCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


ACTIVE_SLOT_CONDITION = text("status = 'SCHEDULED'")


def _new_id() -> str:
    return str(uuid.uuid4())


class Appointment(Base):
    """Represents a booked appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one SCHEDULED appointment per doctor, date and start time.
        Index(
            "uq_appointments_active_slot",
            "doctor_profile_id",
            "date",
            "start_time",
            unique=True,
            postgresql_where=ACTIVE_SLOT_CONDITION,
            sqlite_where=ACTIVE_SLOT_CONDITION,
        ),
        Index("idx_appointments_doctor_date", "doctor_profile_id", "date"),
        Index("idx_appointments_patient_date", "patient_id", "date"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    patient_id = Column(String, nullable=False)
    doctor_profile_id = Column(String(36), ForeignKey("doctor_profiles.id"), nullable=False)
    specialty_id = Column(String(36), ForeignKey("specialties.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    cancellation_reason = Column(String)
    cancelled_at = Column(DateTime)
    notes = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
