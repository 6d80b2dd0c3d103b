"""
Error taxonomy shared by all services.

Every error carries an HTTP status and a `code` tag. The gateway renders
them as `{"error": message, "code": code}`; handlers match on class, never
on message text.
"""

from typing import Any, Dict


class AppError(Exception):
    status_code = 500
    code = "InternalError"
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


# --- 400: INPUT ---
class ValidationError(AppError):
    status_code = 400
    code = "ValidationError"
    default_message = "Invalid request data"


class MissingField(ValidationError):
    code = "MissingField"
    default_message = "Please provide all required fields"


class InvalidDate(ValidationError):
    code = "InvalidDate"
    default_message = "Event date must be in the future"


class InvalidId(AppError):
    status_code = 400
    code = "InvalidId"
    default_message = "Invalid ID format"


# --- 401 / 403 ---
class Unauthorized(AppError):
    status_code = 401
    code = "Unauthorized"
    default_message = "Access denied. No token provided"


class InvalidToken(Unauthorized):
    code = "InvalidToken"
    default_message = "Invalid token"


class TokenExpired(Unauthorized):
    code = "TokenExpired"
    default_message = "Token has expired"


class Forbidden(AppError):
    status_code = 403
    code = "Forbidden"
    default_message = "Not authorized to access this resource"


# --- 404 ---
class NotFound(AppError):
    status_code = 404
    code = "NotFound"
    default_message = "Resource not found"


# --- 400: BUSINESS RULES ---
class Conflict(AppError):
    status_code = 400
    code = "Conflict"
    default_message = "Request conflicts with the current state"


class AlreadyJoined(Conflict):
    code = "AlreadyJoined"
    default_message = "Already attending this event"


class EventFull(Conflict):
    code = "EventFull"
    default_message = "Event is full"


class EventPast(Conflict):
    code = "EventPast"
    default_message = "Event has already taken place"


class NotAttending(Conflict):
    code = "NotAttending"
    default_message = "Not attending this event"


class CreatorCannotLeave(Conflict):
    code = "CreatorCannotLeave"
    default_message = "The creator cannot leave their own event"


class EmailTaken(Conflict):
    code = "EmailTaken"
    default_message = "Email already exists"


class InternalError(AppError):
    pass
