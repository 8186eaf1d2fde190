from datetime import datetime, time, timedelta

import pytest

from backend.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from backend.models.appointment import Appointment, AppointmentStatus
from backend.scheduling import booking
from backend.scheduling.availability import get_availability
from backend.scheduling.booking import BookingRequest, create_appointment
from backend.scheduling.lifecycle import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    AppointmentPatch,
    cancel_appointment,
    list_appointments,
    mark_completed,
    mark_no_show,
    update_appointment,
)
from conftest import MONDAY, NOW

LATER = NOW + timedelta(hours=1)
AFTER_VISIT = datetime.combine(MONDAY, time(12, 0))


@pytest.fixture
def booked(clinic_db) -> Appointment:
    return create_appointment(
        clinic_db,
        BookingRequest(
            patient_id='patient-1',
            doctor_profile_id='doc-1',
            specialty_id='cardiology',
            date=MONDAY,
            start_time=time(10, 0),
            notes='Follow-up',
        ),
        now=NOW,
    )


def _free_starts(db) -> list[time]:
    return [slot.start_time for slot in get_availability(db, MONDAY, doctor_profile_id='doc-1', now=NOW)]


def test_transition_table_has_no_edges_out_of_terminal_states() -> None:
    assert TERMINAL_STATUSES == {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW}
    assert TRANSITIONS[AppointmentStatus.SCHEDULED] == TERMINAL_STATUSES


def test_owner_can_cancel_with_a_reason(clinic_db, booked) -> None:
    cancelled = cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', '  Feeling better  ', now=LATER)

    assert cancelled.status == AppointmentStatus.CANCELLED.value
    assert cancelled.cancellation_reason == 'Feeling better'
    assert cancelled.cancelled_at == LATER
    assert cancelled.updated_at == LATER


def test_cancelling_frees_the_slot_again(clinic_db, booked) -> None:
    assert time(10, 0) not in _free_starts(clinic_db)

    cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', 'Travel', now=LATER)

    assert time(10, 0) in _free_starts(clinic_db)


def test_cancelling_twice_is_a_conflict_and_keeps_updated_at(clinic_db, booked) -> None:
    cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', 'Travel', now=LATER)

    with pytest.raises(ConflictError):
        cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', 'Again', now=LATER + timedelta(hours=1))

    clinic_db.expire_all()
    reloaded = clinic_db.get(Appointment, booked.id)
    assert reloaded.updated_at == LATER
    assert reloaded.cancellation_reason == 'Travel'


def test_other_patients_cannot_cancel(clinic_db, booked) -> None:
    with pytest.raises(AuthorizationError):
        cancel_appointment(clinic_db, booked.id, 'patient-2', 'PATIENT', 'Not mine', now=LATER)

    clinic_db.expire_all()
    assert clinic_db.get(Appointment, booked.id).status == AppointmentStatus.SCHEDULED.value


def test_staff_can_cancel_any_appointment(clinic_db, booked) -> None:
    cancelled = cancel_appointment(clinic_db, booked.id, 'secretary-1', 'secretary', 'Doctor unavailable', now=LATER)

    assert cancelled.status == AppointmentStatus.CANCELLED.value


@pytest.mark.parametrize('reason', ['', '   ', None])
def test_cancelling_requires_a_reason(clinic_db, booked, reason) -> None:
    with pytest.raises(ValidationError):
        cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', reason, now=LATER)


def test_cancelling_unknown_appointment_is_not_found(clinic_db) -> None:
    with pytest.raises(NotFoundError):
        cancel_appointment(clinic_db, 'missing', 'patient-1', 'PATIENT', 'Travel', now=LATER)


def test_update_changes_notes_only(clinic_db, booked) -> None:
    updated = update_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(notes='Bring results'), now=LATER)

    assert updated.notes == 'Bring results'
    assert updated.start_time == time(10, 0)
    assert updated.updated_at == LATER


def test_blank_notes_clear_them(clinic_db, booked) -> None:
    updated = update_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(notes='  '), now=LATER)

    assert updated.notes is None


def test_reschedule_moves_the_reservation_in_one_step(clinic_db, booked) -> None:
    moved = update_appointment(
        clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(start_time=time(15, 30)), now=LATER,
    )

    assert moved.id == booked.id
    assert moved.start_time == time(15, 30)
    assert moved.end_time == time(16, 0)

    free = _free_starts(clinic_db)
    assert time(10, 0) in free
    assert time(15, 30) not in free
    assert clinic_db.query(Appointment).filter(
        Appointment.status == AppointmentStatus.SCHEDULED.value,
    ).count() == 1


def test_reschedule_into_a_taken_slot_is_a_conflict(clinic_db, booked) -> None:
    create_appointment(
        clinic_db,
        BookingRequest('patient-2', 'doc-1', 'cardiology', MONDAY, time(11, 0)),
        now=NOW,
    )

    with pytest.raises(ConflictError):
        update_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(start_time=time(11, 0)), now=LATER)

    clinic_db.expire_all()
    assert clinic_db.get(Appointment, booked.id).start_time == time(10, 0)


def test_unique_index_rejects_a_reschedule_that_skipped_the_check(clinic_db, booked, monkeypatch: pytest.MonkeyPatch) -> None:
    create_appointment(
        clinic_db,
        BookingRequest('patient-2', 'doc-1', 'cardiology', MONDAY, time(11, 0)),
        now=NOW,
    )
    monkeypatch.setattr(booking, 'ensure_slot_free', lambda *args, **kwargs: None)

    with pytest.raises(ConflictError):
        update_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(start_time=time(11, 0)), now=LATER)

    clinic_db.expire_all()
    assert clinic_db.get(Appointment, booked.id).start_time == time(10, 0)
    assert clinic_db.get(Appointment, booked.id).status == AppointmentStatus.SCHEDULED.value
    assert time(10, 0) not in _free_starts(clinic_db)


def test_reschedule_to_misaligned_time_is_rejected(clinic_db, booked) -> None:
    with pytest.raises(ValidationError):
        update_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(start_time=time(10, 15)), now=LATER)


def test_cancelled_appointment_cannot_be_updated(clinic_db, booked) -> None:
    cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', 'Travel', now=LATER)

    with pytest.raises(ConflictError):
        update_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', AppointmentPatch(notes='Hello'), now=LATER)


def test_other_patients_cannot_update(clinic_db, booked) -> None:
    with pytest.raises(AuthorizationError):
        update_appointment(clinic_db, booked.id, 'patient-2', 'PATIENT', AppointmentPatch(notes='Hello'), now=LATER)


def test_completion_before_the_visit_is_rejected(clinic_db, booked) -> None:
    with pytest.raises(ValidationError):
        mark_completed(clinic_db, booked.id, 'ADMIN', now=LATER)


def test_staff_close_visit_after_it_started(clinic_db, booked) -> None:
    completed = mark_completed(clinic_db, booked.id, 'ADMIN', now=AFTER_VISIT)

    assert completed.status == AppointmentStatus.COMPLETED.value
    assert completed.updated_at == AFTER_VISIT

    with pytest.raises(ConflictError):
        cancel_appointment(clinic_db, booked.id, 'patient-1', 'PATIENT', 'Too late', now=AFTER_VISIT)
    with pytest.raises(ConflictError):
        mark_no_show(clinic_db, booked.id, 'ADMIN', now=AFTER_VISIT)


def test_system_can_record_no_show(clinic_db, booked) -> None:
    closed = mark_no_show(clinic_db, booked.id, 'SYSTEM', now=AFTER_VISIT)

    assert closed.status == AppointmentStatus.NO_SHOW.value


def test_patients_cannot_close_visits(clinic_db, booked) -> None:
    with pytest.raises(AuthorizationError):
        mark_no_show(clinic_db, booked.id, 'PATIENT', now=AFTER_VISIT)


def test_list_appointments_filters_and_orders(clinic_db, booked) -> None:
    second_monday = MONDAY + timedelta(weeks=1)
    later_visit = create_appointment(
        clinic_db,
        BookingRequest('patient-1', 'doc-1', 'cardiology', second_monday, time(9, 0)),
        now=NOW,
    )
    create_appointment(
        clinic_db,
        BookingRequest('patient-2', 'doc-1', 'cardiology', MONDAY, time(9, 0)),
        now=NOW,
    )
    cancel_appointment(clinic_db, later_visit.id, 'patient-1', 'PATIENT', 'Travel', now=LATER)

    everything = list_appointments(clinic_db, 'patient-1')
    assert [appointment.id for appointment in everything] == [booked.id, later_visit.id]

    cancelled = list_appointments(clinic_db, 'patient-1', status=AppointmentStatus.CANCELLED)
    assert [appointment.id for appointment in cancelled] == [later_visit.id]

    first_week = list_appointments(clinic_db, 'patient-1', date_from=MONDAY, date_to=MONDAY)
    assert [appointment.id for appointment in first_week] == [booked.id]
