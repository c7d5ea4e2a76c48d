"""Domain errors raised by the attendance services.

Every error carries the HTTP status it maps to; the handlers in
``app.main`` render them as ``{"message": ...}``.
"""


class AttendanceError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AttendanceError):
    """Missing or malformed input."""

    status_code = 400


class NotFound(AttendanceError):
    status_code = 404


class PermissionDenied(AttendanceError):
    """The actor is not entitled to the intern or action."""

    status_code = 403


class DuplicateAttendance(AttendanceError):
    """An active record already exists for the (intern, date) pair.

    ``code`` is ``"exists"`` when the record was found before writing and
    ``"concurrent_write"`` when the unique index rejected the insert because
    another writer got there first.
    """

    status_code = 400

    def __init__(self, message: str = "Attendance already marked for this intern on this date", code: str = "exists"):
        super().__init__(message)
        self.code = code


class ActorNotFound(AttendanceError):
    status_code = 404

    def __init__(self, actor_id: str, status_code: int | None = None):
        super().__init__(f"User not found: {actor_id}", status_code)
        self.actor_id = actor_id
