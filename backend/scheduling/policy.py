"""Who may act on an appointment."""

from backend.core import config
from backend.core.errors import AuthorizationError
from backend.models.appointment import Appointment

SYSTEM_ROLE = 'SYSTEM'


def is_staff(caller_role: str | None) -> bool:
    role = (caller_role or '').strip().upper()
    return role == SYSTEM_ROLE or role in config.STAFF_ROLES


def can_act_on(caller_id: str, caller_role: str | None, appointment: Appointment) -> bool:
    if is_staff(caller_role):
        return True
    return bool(caller_id) and appointment.patient_id == caller_id


def require_access(caller_id: str, caller_role: str | None, appointment: Appointment) -> None:
    if not can_act_on(caller_id, caller_role, appointment):
        raise AuthorizationError('You do not have permission to modify this appointment.')


def require_staff(caller_role: str | None) -> None:
    if not is_staff(caller_role):
        raise AuthorizationError('Only staff can close appointments.')
