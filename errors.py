"""Application error taxonomy. Each error carries the HTTP status it maps to."""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Missing or malformed input, empty cart, insufficient stock."""
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class AuthError(AppError):
    """Bad credentials, missing/invalid/expired token, inactive account."""
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403
