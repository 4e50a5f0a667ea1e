"""Exceptions raised by the service layer.

Endpoints never see SQL errors for expected conditions; services raise one of
these and ``main.py`` maps it to a JSON error response. Access denials use the
built-in ``PermissionError`` (and ``PolicyViolation``), which map to 403.
"""


class ServiceError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class InvitationRejected(ServiceError):
    """Sign-up refused over its invite code. Validation may already have marked the invitation expired."""
