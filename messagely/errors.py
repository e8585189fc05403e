"""
Error taxonomy shared by the data-model layer and the HTTP boundary.

Each error carries the HTTP status it maps to and a generic public message.
The core raises these and never swallows them; the boundary renders them.
"""


class MessagelyError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MessagelyError):
    """A required field is missing or empty."""

    status_code = 422
    default_message = "Invalid request"


class UnauthenticatedError(MessagelyError):
    """Credentials or bearer token are missing or invalid."""

    status_code = 401
    default_message = "Invalid username/password"


class ForbiddenError(MessagelyError):
    """The authenticated identity may not perform this operation."""

    status_code = 403
    default_message = "Not permitted"


class NotFoundError(MessagelyError):
    status_code = 404
    default_message = "Not found"


class ConflictError(MessagelyError):
    """Username already registered."""

    status_code = 409
    default_message = "Username already taken"


class ForeignKeyError(MessagelyError):
    """A message references a user that does not exist."""

    status_code = 400
    default_message = "Unknown user"
