"""
Appointment lifecycle.

Every status change goes through ``TRANSITIONS``. A terminal appointment has
no outgoing edges, so cancelling or closing it again is a conflict rather than
a silent no-op.
"""

import logging
from dataclasses import dataclass
from datetime import date as Date, datetime, time

from sqlalchemy.orm import Session

from backend.core.errors import ConflictError, NotFoundError, ValidationError
from backend.models.appointment import Appointment, AppointmentStatus
from backend.scheduling.booking import move_appointment
from backend.scheduling.policy import require_access, require_staff
from backend.scheduling.transactions import atomic, store_read

logger = logging.getLogger(__name__)

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


@dataclass(frozen=True)
class AppointmentPatch:
    """Fields a caller may change. ``None`` leaves a field untouched; empty notes clear them."""

    notes: str | None = None
    date: Date | None = None
    start_time: time | None = None


def ensure_transition(appointment: Appointment, target: AppointmentStatus) -> None:
    current = AppointmentStatus(appointment.status)
    if target not in TRANSITIONS[current]:
        raise ConflictError(f'Cannot change an appointment from {current.value} to {target.value}.')


def get_appointment(db: Session, appointment_id: str, for_update: bool = False) -> Appointment:
    query = db.query(Appointment).filter(Appointment.id == appointment_id)
    if for_update:
        query = query.with_for_update()
    appointment = query.first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def cancel_appointment(
    db: Session,
    appointment_id: str,
    caller_id: str,
    caller_role: str | None,
    reason: str | None,
    now: datetime | None = None,
) -> Appointment:
    reference = now or datetime.now()
    normalized_reason = (reason or '').strip()
    if not normalized_reason:
        raise ValidationError('A cancellation reason is required.')

    with atomic(db, 'cancellation'):
        appointment = get_appointment(db, appointment_id, for_update=True)
        require_access(caller_id, caller_role, appointment)
        ensure_transition(appointment, AppointmentStatus.CANCELLED)

        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancellation_reason = normalized_reason
        appointment.cancelled_at = reference
        appointment.updated_at = reference

    db.refresh(appointment)
    logger.info('Appointment %s cancelled by %s', appointment.id, caller_id)
    return appointment


def update_appointment(
    db: Session,
    appointment_id: str,
    caller_id: str,
    caller_role: str | None,
    patch: AppointmentPatch,
    now: datetime | None = None,
) -> Appointment:
    reference = now or datetime.now()

    with atomic(db, 'appointment update'):
        appointment = get_appointment(db, appointment_id, for_update=True)
        require_access(caller_id, caller_role, appointment)
        if AppointmentStatus(appointment.status) is not AppointmentStatus.SCHEDULED:
            raise ConflictError('Only scheduled appointments can be changed.')

        new_date = patch.date or appointment.date
        new_start_time = patch.start_time or appointment.start_time
        rescheduled = (new_date, new_start_time) != (appointment.date, appointment.start_time)
        if rescheduled:
            move_appointment(db, appointment, new_date, new_start_time, reference)

        if patch.notes is not None:
            appointment.notes = patch.notes.strip() or None

        appointment.updated_at = reference

    db.refresh(appointment)
    if rescheduled:
        logger.info(
            'Appointment %s moved to %s at %s by %s',
            appointment.id,
            appointment.date,
            appointment.start_time.strftime('%H:%M'),
            caller_id,
        )
    return appointment


def _close_appointment(
    db: Session,
    appointment_id: str,
    caller_role: str | None,
    target: AppointmentStatus,
    now: datetime | None,
) -> Appointment:
    reference = now or datetime.now()
    require_staff(caller_role)

    with atomic(db, f'marking {target.value}'):
        appointment = get_appointment(db, appointment_id, for_update=True)
        ensure_transition(appointment, target)
        if datetime.combine(appointment.date, appointment.start_time) > reference:
            raise ValidationError('Appointments can only be closed once their start time has passed.')

        appointment.status = target.value
        appointment.updated_at = reference

    db.refresh(appointment)
    logger.info('Appointment %s marked %s', appointment.id, target.value)
    return appointment


def mark_completed(
    db: Session,
    appointment_id: str,
    caller_role: str | None,
    now: datetime | None = None,
) -> Appointment:
    return _close_appointment(db, appointment_id, caller_role, AppointmentStatus.COMPLETED, now)


def mark_no_show(
    db: Session,
    appointment_id: str,
    caller_role: str | None,
    now: datetime | None = None,
) -> Appointment:
    return _close_appointment(db, appointment_id, caller_role, AppointmentStatus.NO_SHOW, now)


def list_appointments(
    db: Session,
    patient_id: str,
    status: AppointmentStatus | None = None,
    date_from: Date | None = None,
    date_to: Date | None = None,
) -> list[Appointment]:
    with store_read(db, 'appointment listing'):
        query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
        if status is not None:
            query = query.filter(Appointment.status == status.value)
        if date_from is not None:
            query = query.filter(Appointment.date >= date_from)
        if date_to is not None:
            query = query.filter(Appointment.date <= date_to)

        return query.order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()
