"""Doctor directory model definitions."""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, String

from backend.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Specialty(Base):
    """A medical specialty doctors are grouped under."""
    __tablename__ = "specialties"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False, unique=True)


class DoctorProfile(Base):
    """A doctor who publishes weekly availability."""
    __tablename__ = "doctor_profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    specialty_id = Column(String(36), ForeignKey("specialties.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
