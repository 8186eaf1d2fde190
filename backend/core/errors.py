"""Error types raised by the scheduling engine.

Routes translate these into HTTP responses; the engine itself never raises
``HTTPException``.
"""


class SchedulingError(Exception):
    """Base class for every failure surfaced by the booking engine."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(SchedulingError):
    """Input is well-formed but breaks a business rule (past date, misaligned slot)."""


class ConflictError(SchedulingError):
    """The slot is no longer free, or the appointment is already in a terminal state."""


class AuthorizationError(SchedulingError):
    """The caller has no rights over the target appointment."""


class NotFoundError(SchedulingError):
    """A referenced appointment, doctor or specialty does not exist."""


class TransientStoreError(SchedulingError):
    """The store timed out or was unreachable. The transaction was rolled back."""
