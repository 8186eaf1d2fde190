"""
Availability resolution.

Combines generated slots with the appointments already holding them. Every
store access here is a batch read over all participating doctors; nothing is
queried per slot. Results are a snapshot: booking re-checks under its own
transaction.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from backend.core.errors import NotFoundError
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.doctor import DoctorProfile
from backend.models.schedule import BlockedPeriod, ScheduleTemplate
from backend.scheduling.slots import Slot, day_of_week, generate_slots
from backend.scheduling.transactions import store_read

logger = logging.getLogger(__name__)


def load_doctors(
    db: Session,
    doctor_profile_id: str | None = None,
    specialty_id: str | None = None,
) -> list[DoctorProfile]:
    query = db.query(DoctorProfile).filter(DoctorProfile.is_active.is_(True))
    if doctor_profile_id:
        query = query.filter(DoctorProfile.id == doctor_profile_id)
    if specialty_id:
        query = query.filter(DoctorProfile.specialty_id == specialty_id)

    doctors = query.order_by(DoctorProfile.id.asc()).all()
    if doctor_profile_id and not doctors and not specialty_id:
        raise NotFoundError('Doctor not found.')
    return doctors


def load_schedule_templates(
    db: Session,
    doctor_ids: list[str],
    target_date: date,
) -> dict[str, list[ScheduleTemplate]]:
    templates_by_doctor: dict[str, list[ScheduleTemplate]] = defaultdict(list)
    if not doctor_ids:
        return templates_by_doctor

    templates = db.query(ScheduleTemplate).filter(
        ScheduleTemplate.doctor_profile_id.in_(doctor_ids),
        ScheduleTemplate.day_of_week == day_of_week(target_date),
        ScheduleTemplate.is_active.is_(True),
    ).all()
    for template in templates:
        templates_by_doctor[template.doctor_profile_id].append(template)

    return templates_by_doctor


def load_booked_start_times(db: Session, doctor_ids: list[str], target_date: date) -> set[tuple[str, time]]:
    if not doctor_ids:
        return set()

    rows = db.query(Appointment.doctor_profile_id, Appointment.start_time).filter(
        Appointment.doctor_profile_id.in_(doctor_ids),
        Appointment.date == target_date,
        Appointment.status == AppointmentStatus.SCHEDULED.value,
    ).all()
    return {(doctor_id, start_time.replace(second=0, microsecond=0)) for doctor_id, start_time in rows}


def load_blocked_windows(
    db: Session,
    doctor_ids: list[str],
    target_date: date,
) -> dict[str, list[tuple[datetime, datetime]]]:
    windows: dict[str, list[tuple[datetime, datetime]]] = defaultdict(list)
    if not doctor_ids:
        return windows

    day_start = datetime.combine(target_date, time.min)
    day_end = day_start + timedelta(days=1)
    rows = db.query(BlockedPeriod.doctor_profile_id, BlockedPeriod.start_datetime, BlockedPeriod.end_datetime).filter(
        BlockedPeriod.doctor_profile_id.in_(doctor_ids),
        BlockedPeriod.is_active.is_(True),
        BlockedPeriod.start_datetime < day_end,
        BlockedPeriod.end_datetime > day_start,
    ).all()
    for doctor_id, blocked_start, blocked_end in rows:
        windows[doctor_id].append((blocked_start, blocked_end))

    return windows


def is_blocked(slot: Slot, windows: list[tuple[datetime, datetime]]) -> bool:
    return any(blocked_start < slot.ends_at and blocked_end > slot.starts_at for blocked_start, blocked_end in windows)


def get_availability(
    db: Session,
    target_date: date,
    doctor_profile_id: str | None = None,
    specialty_id: str | None = None,
    now: datetime | None = None,
) -> list[Slot]:
    """Free slots on ``target_date``, ordered by start time then doctor id.

    The doctor and specialty filters only narrow which doctors take part.
    """
    reference = now or datetime.now()

    with store_read(db, 'availability lookup'):
        doctors = load_doctors(db, doctor_profile_id=doctor_profile_id, specialty_id=specialty_id)
        doctor_ids = [doctor.id for doctor in doctors]
        templates_by_doctor = load_schedule_templates(db, doctor_ids, target_date)
        booked = load_booked_start_times(db, doctor_ids, target_date)
        blocked_windows = load_blocked_windows(db, doctor_ids, target_date)

    available: list[Slot] = []
    for doctor in doctors:
        templates = templates_by_doctor.get(doctor.id, [])
        if not templates:
            continue

        for slot in generate_slots(doctor.id, doctor.specialty_id, templates, target_date, now=reference):
            if (doctor.id, slot.start_time) in booked:
                continue
            if is_blocked(slot, blocked_windows.get(doctor.id, [])):
                continue
            available.append(slot)

    available.sort(key=lambda slot: (slot.start_time, slot.doctor_profile_id))
    logger.debug('Resolved %d free slots for %s across %d doctors', len(available), target_date, len(doctors))
    return available
