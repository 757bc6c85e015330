"""
Error taxonomy for the routing engine and its HTTP mapping.
"""
from typing import Optional


class RelayError(Exception):
    """Base error; carries the HTTP status it maps to at the API boundary."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingFields(RelayError):
    status_code = 400
    default_message = "sessionId and text are required"


class NotFound(RelayError):
    status_code = 404
    default_message = "Session not found"


class InvalidState(RelayError):
    status_code = 409
    default_message = "Session is not operator-handled"


class InvalidInput(RelayError):
    status_code = 400
    default_message = "Text is required"


class Internal(RelayError):
    status_code = 500
    default_message = "Error processing the message"


class Unauthorized(RelayError):
    status_code = 401
    default_message = "Authentication required"


class ResponderError(Internal):
    """Upstream model call returned a non-success response.

    Clients only see the generic message; ``detail`` is for the logs.
    """

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        self.detail = f"Model HTTP {status}: {body}"
        super().__init__()

    def __str__(self) -> str:
        return self.detail
