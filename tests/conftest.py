import os
from datetime import date, datetime, time

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from backend.database import Base, build_engine  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402,F401
from backend.models.doctor import DoctorProfile, Specialty  # noqa: E402
from backend.models.schedule import BlockedPeriod, ScheduleTemplate  # noqa: E402,F401

MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
NOW = datetime(2030, 1, 1, 8, 0)

# Sunday-based weekday index used by schedule templates.
MONDAY_INDEX = 1


def seed_clinic(db) -> None:
    """Two cardiologists and one dermatologist with Monday schedules."""
    db.add_all([
        Specialty(id='cardiology', name='Cardiology'),
        Specialty(id='dermatology', name='Dermatology'),
    ])
    db.add_all([
        DoctorProfile(id='doc-1', user_id='user-doc-1', specialty_id='cardiology'),
        DoctorProfile(id='doc-2', user_id='user-doc-2', specialty_id='cardiology'),
        DoctorProfile(id='doc-3', user_id='user-doc-3', specialty_id='dermatology'),
    ])
    db.add_all([
        # Afternoon block listed first on purpose.
        ScheduleTemplate(
            doctor_profile_id='doc-1', day_of_week=MONDAY_INDEX,
            start_time=time(14, 0), end_time=time(18, 0), slot_duration=30,
        ),
        ScheduleTemplate(
            doctor_profile_id='doc-1', day_of_week=MONDAY_INDEX,
            start_time=time(9, 0), end_time=time(13, 0), slot_duration=30,
        ),
        ScheduleTemplate(
            doctor_profile_id='doc-2', day_of_week=MONDAY_INDEX,
            start_time=time(9, 0), end_time=time(10, 0), slot_duration=30,
        ),
        ScheduleTemplate(
            doctor_profile_id='doc-3', day_of_week=MONDAY_INDEX,
            start_time=time(9, 0), end_time=time(10, 0), slot_duration=20,
        ),
    ])
    db.flush()


@pytest.fixture
def engine():
    test_engine = build_engine('sqlite:///:memory:')
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture
def db(engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clinic_db(db):
    seed_clinic(db)
    db.commit()
    return db
