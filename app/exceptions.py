"""
Typed application errors

Services raise these; the handlers in app.main render them as JSON with the
carried status code. Ownership mismatches are reported as NotFound so that
callers cannot probe for other users' sessions.
"""


class AppError(Exception):
    """Base error carrying an HTTP status code and a short error kind"""

    status_code = 500
    error = "app_error"

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(AppError):
    """Missing or invalid input (no syllabus, zero-section assessment, bad file)"""

    status_code = 400
    error = "validation_error"


class NotFound(AppError):
    status_code = 404
    error = "not_found"


class StateConflict(AppError):
    """Requested transition is not valid for the current state"""

    status_code = 409
    error = "state_conflict"


class SessionExpired(StateConflict):
    error = "session_expired"


class UpstreamFailure(AppError):
    """AI gateway call failed or returned unusable output"""

    status_code = 502
    error = "upstream_failure"
