"""
auth/errors.py -- Error taxonomy for the session layer.

Every failure that crosses the session manager or the gate is one of these.
Each class carries the HTTP status, a machine-readable code and a generic
message; api/main.py renders them into the ErrorResponse envelope. Internal
detail (SQL errors, stack traces, token parse errors) is logged where it is
caught and never copied into the message.

NotFoundError completes the taxonomy for lookups by id; no session operation
raises it today, since a missing user behind a valid token is InternalError.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidInputError(AuthError):
    status_code = 400
    code = "invalid_input"
    message = "Invalid input."


class UnauthorizedError(AuthError):
    """Bad credentials or a bad, expired or reused token.

    The message stays deliberately generic so responses do not reveal which
    check failed.
    """

    status_code = 401
    code = "unauthorized"
    message = "Not authorized."


class AuthenticationRequired(UnauthorizedError):
    """Raised by the gate. Rendered as a bare 401 with no body."""


class ConflictError(AuthError):
    status_code = 400
    code = "conflict"
    message = "Email already exists."


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    message = "Resource not found."


class InternalError(AuthError):
    pass
