from __future__ import annotations


class CRMError(Exception):
    """
    Base error for domain failures raised by services and gates.
    The message is safe to return to the caller verbatim.
    """

    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(CRMError):
    status_code = 400


class AuthenticationError(CRMError):
    status_code = 401


class AuthorizationError(CRMError):
    status_code = 403


class NotFoundError(CRMError):
    status_code = 404


class ConflictError(CRMError):
    status_code = 409
