from datetime import date as Date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import Caller, get_current_caller
from backend.core import config
from backend.core.errors import SchedulingError
from backend.database import get_db
from backend.models.appointment import AppointmentStatus
from backend.routes.common import ensure_database_ready, to_http_exception
from backend.scheduling import booking, lifecycle

router = APIRouter(tags=['appointments'])


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_profile_id: str
    specialty_id: str
    date: Date
    start_time: time
    notes: str | None = None

    @field_validator('doctor_profile_id', 'specialty_id')
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Identifier is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        normalized = _normalize_notes(value)
        return normalized or None


class UpdateAppointmentRequest(BaseModel):
    date: Date | None = None
    start_time: time | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class CancelAppointmentRequest(BaseModel):
    cancellation_reason: str

    @field_validator('cancellation_reason')
    @classmethod
    def validate_cancellation_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A cancellation reason is required.')
        return normalized


class AppointmentResponse(BaseModel):
    id: str
    patient_id: str
    doctor_profile_id: str
    specialty_id: str
    date: Date
    start_time: time
    end_time: time
    status: AppointmentStatus
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking.create_appointment(
            db,
            booking.BookingRequest(
                patient_id=caller.user_id,
                doctor_profile_id=data.doctor_profile_id,
                specialty_id=data.specialty_id,
                date=data.date,
                start_time=data.start_time,
                notes=data.notes,
            ),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/me', response_model=list[AppointmentResponse])
def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    date_from: Date | None = Query(default=None),
    date_to: Date | None = Query(default=None),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return lifecycle.list_appointments(
            db,
            patient_id=caller.user_id,
            status=status_filter,
            date_from=date_from,
            date_to=date_to,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: str,
    data: UpdateAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return lifecycle.update_appointment(
            db,
            appointment_id,
            caller_id=caller.user_id,
            caller_role=caller.role,
            patch=lifecycle.AppointmentPatch(notes=data.notes, date=data.date, start_time=data.start_time),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{appointment_id}/cancel', response_model=AppointmentResponse)
@router.delete('/{appointment_id}', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: str,
    data: CancelAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return lifecycle.cancel_appointment(
            db,
            appointment_id,
            caller_id=caller.user_id,
            caller_role=caller.role,
            reason=data.cancellation_reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: str,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return lifecycle.mark_completed(db, appointment_id, caller_role=caller.role)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_appointment_no_show(
    appointment_id: str,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return lifecycle.mark_no_show(db, appointment_id, caller_role=caller.role)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
