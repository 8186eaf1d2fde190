"""
Booking transactions.

A booking never trusts a previously returned availability list. Inside one
transaction it re-derives the doctor's slots for the date, checks that no
SCHEDULED appointment holds the requested start time, and inserts. The
partial unique index ``uq_appointments_active_slot`` is the final arbiter: if
a concurrent transaction commits the same slot first, the flush or commit
fails and the caller gets ``ConflictError``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.doctor import DoctorProfile, Specialty
from backend.scheduling.availability import is_blocked, load_blocked_windows, load_schedule_templates
from backend.scheduling.slots import Slot, find_slot, generate_slots
from backend.scheduling.transactions import SLOT_TAKEN_DETAIL, atomic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRequest:
    patient_id: str
    doctor_profile_id: str
    specialty_id: str
    date: date
    start_time: time
    notes: str | None = None


def normalize_start_time(value: time) -> time:
    return value.replace(second=0, microsecond=0, tzinfo=None)


def ensure_future(appointment_date: date, start_time: time, now: datetime) -> None:
    if datetime.combine(appointment_date, start_time) <= now:
        raise ValidationError('Appointments must be scheduled in the future.')


def get_bookable_doctor(db: Session, doctor_profile_id: str) -> DoctorProfile:
    doctor = db.get(DoctorProfile, doctor_profile_id)
    if doctor is None or not doctor.is_active:
        raise NotFoundError('Doctor not found.')
    return doctor


def resolve_requested_slot(
    db: Session,
    doctor: DoctorProfile,
    appointment_date: date,
    start_time: time,
    now: datetime,
) -> Slot:
    templates = load_schedule_templates(db, [doctor.id], appointment_date).get(doctor.id, [])
    if not templates:
        raise ValidationError('The doctor has no schedule on this day.')

    slots = generate_slots(doctor.id, doctor.specialty_id, templates, appointment_date, now=now)
    slot = find_slot(slots, start_time)
    if slot is None:
        raise ValidationError("The requested time does not match any of the doctor's slots.")

    blocked_windows = load_blocked_windows(db, [doctor.id], appointment_date).get(doctor.id, [])
    if is_blocked(slot, blocked_windows):
        raise ConflictError('This time is blocked.')

    return slot


def find_active_appointment(
    db: Session,
    doctor_profile_id: str,
    appointment_date: date,
    start_time: time,
    exclude_appointment_id: str | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.doctor_profile_id == doctor_profile_id,
        Appointment.date == appointment_date,
        Appointment.start_time == start_time,
        Appointment.status == AppointmentStatus.SCHEDULED.value,
    )
    if exclude_appointment_id:
        query = query.filter(Appointment.id != exclude_appointment_id)
    return query.first()


def ensure_slot_free(
    db: Session,
    doctor_profile_id: str,
    appointment_date: date,
    start_time: time,
    exclude_appointment_id: str | None = None,
) -> None:
    if find_active_appointment(db, doctor_profile_id, appointment_date, start_time, exclude_appointment_id):
        raise ConflictError(SLOT_TAKEN_DETAIL)


def ensure_patient_free(
    db: Session,
    patient_id: str,
    doctor_profile_id: str,
    appointment_date: date,
    exclude_appointment_id: str | None = None,
) -> None:
    query = db.query(Appointment.id).filter(
        Appointment.patient_id == patient_id,
        Appointment.doctor_profile_id == doctor_profile_id,
        Appointment.date == appointment_date,
        Appointment.status == AppointmentStatus.SCHEDULED.value,
    )
    if exclude_appointment_id:
        query = query.filter(Appointment.id != exclude_appointment_id)
    if query.first() is not None:
        raise ConflictError('You already have an appointment with this doctor on this date.')


def create_appointment(db: Session, request: BookingRequest, now: datetime | None = None) -> Appointment:
    reference = now or datetime.now()
    start_time = normalize_start_time(request.start_time)
    ensure_future(request.date, start_time, reference)

    with atomic(db, 'booking'):
        doctor = get_bookable_doctor(db, request.doctor_profile_id)

        specialty = db.get(Specialty, request.specialty_id)
        if specialty is None:
            raise NotFoundError('Specialty not found.')
        if doctor.specialty_id != specialty.id:
            raise ValidationError('The doctor does not belong to the selected specialty.')

        slot = resolve_requested_slot(db, doctor, request.date, start_time, reference)
        ensure_slot_free(db, doctor.id, request.date, start_time)
        ensure_patient_free(db, request.patient_id, doctor.id, request.date)

        appointment = Appointment(
            patient_id=request.patient_id,
            doctor_profile_id=doctor.id,
            specialty_id=specialty.id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            status=AppointmentStatus.SCHEDULED.value,
            notes=request.notes,
            created_at=reference,
            updated_at=reference,
        )
        db.add(appointment)
        db.flush()

    db.refresh(appointment)
    logger.info(
        'Booked appointment %s with doctor %s on %s at %s',
        appointment.id,
        appointment.doctor_profile_id,
        appointment.date,
        appointment.start_time.strftime('%H:%M'),
    )
    return appointment


def move_appointment(
    db: Session,
    appointment: Appointment,
    new_date: date,
    new_start_time: time,
    now: datetime,
) -> None:
    """Point a SCHEDULED appointment at another slot of the same doctor.

    Must run inside the caller's transaction. The row is updated in place, so
    the old slot is released by the same commit that reserves the new one.
    """
    start_time = normalize_start_time(new_start_time)
    ensure_future(new_date, start_time, now)

    doctor = get_bookable_doctor(db, appointment.doctor_profile_id)
    slot = resolve_requested_slot(db, doctor, new_date, start_time, now)
    ensure_slot_free(db, doctor.id, new_date, start_time, exclude_appointment_id=appointment.id)
    ensure_patient_free(db, appointment.patient_id, doctor.id, new_date, exclude_appointment_id=appointment.id)

    appointment.date = slot.date
    appointment.start_time = slot.start_time
    appointment.end_time = slot.end_time
    db.flush()
