"""Scheduling error taxonomy.

Services raise these directly; each one is an ``HTTPException`` so the
routers need no translation layer and FastAPI renders ``{"detail": ...}``.
"""

from fastapi import HTTPException


class SchedulingError(HTTPException):
    """Base class for booking engine failures"""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)

    @property
    def reason(self) -> str:
        return str(self.detail)

    def __str__(self) -> str:
        return self.reason


class NotFoundError(SchedulingError):
    """Referenced doctor, patient, schedule or appointment does not exist"""

    status_code = 404


class InvalidStateError(SchedulingError):
    """Request is well-formed but not allowed in the current state"""

    status_code = 422


class ConflictError(SchedulingError):
    """Overlapping interval or slot already booked"""

    status_code = 409


class BookingValidationError(SchedulingError):
    """Structurally malformed input (missing required fields)"""

    status_code = 400
