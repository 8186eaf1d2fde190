"""Schedule template and blocked period model definitions."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Time

from backend.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class ScheduleTemplate(Base):
    """A recurring weekly availability block for one doctor.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "schedule_templates"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_schedule_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_schedule_time_order"),
        CheckConstraint("slot_duration > 0", name="ck_schedule_slot_duration"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    doctor_profile_id = Column(String(36), ForeignKey("doctor_profiles.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class BlockedPeriod(Base):
    """A time range during which a doctor takes no bookings."""
    __tablename__ = "blocked_periods"

    id = Column(String(36), primary_key=True, default=_new_id)
    doctor_profile_id = Column(String(36), ForeignKey("doctor_profiles.id"), nullable=False, index=True)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    reason = Column(String)
    created_by = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
