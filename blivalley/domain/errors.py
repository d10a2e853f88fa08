"""
Domain exceptions.

Services raise these; the API layer maps each one to an HTTP status code.
"""


class BlivalleyError(Exception):
    """Base class for all expected, user-facing errors"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(BlivalleyError):
    status_code = 400


class AuthenticationError(BlivalleyError):
    status_code = 401


class NotFoundError(BlivalleyError):
    status_code = 404


class ConflictError(BlivalleyError):
    """Duplicate data or a concurrent modification"""
    status_code = 409


class InvalidStateError(BlivalleyError):
    """The operation is not allowed in the entity's current lifecycle state"""
    status_code = 409
