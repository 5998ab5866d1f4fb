from __future__ import annotations

from enum import Enum


class StatusKind(str, Enum):
    CREATED = "Created"
    OK = "Ok"
    BAD_REQUEST = "BadRequest"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    UNPROCESSABLE_ENTITY = "UnprocessableEntity"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    INTERNAL_ERROR = "InternalError"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    StatusKind.CREATED: 201,
    StatusKind.OK: 200,
    StatusKind.BAD_REQUEST: 400,
    StatusKind.UNAUTHORIZED: 401,
    StatusKind.FORBIDDEN: 403,
    StatusKind.NOT_FOUND: 404,
    StatusKind.CONFLICT: 409,
    StatusKind.UNPROCESSABLE_ENTITY: 422,
    StatusKind.SERVICE_UNAVAILABLE: 503,
    StatusKind.INTERNAL_ERROR: 500,
}


class GiftExchangeError(RuntimeError):
    """Base class for every error surfaced to a caller.

    ``message`` is safe to show to users; ``code`` is an optional stable
    identifier clients can branch on.
    """

    status_kind = StatusKind.INTERNAL_ERROR
    default_message = "Unexpected error"

    def __init__(self, message: str | None = None, code: str | None = None):
        self.message = message or self.default_message
        self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.code:
            body["code"] = self.code
        return body


class ValidationError(GiftExchangeError):
    status_kind = StatusKind.BAD_REQUEST
    default_message = "Invalid request"


class UnauthorizedError(GiftExchangeError):
    status_kind = StatusKind.UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(GiftExchangeError):
    status_kind = StatusKind.FORBIDDEN
    default_message = "Not authorized"


class InvalidParticipantToken(ForbiddenError):
    default_message = "Invalid participant token"


class NotFoundError(GiftExchangeError):
    status_kind = StatusKind.NOT_FOUND
    default_message = "Not found"


class ConflictError(GiftExchangeError):
    status_kind = StatusKind.CONFLICT
    default_message = "Conflict"


class UnprocessableEntityError(GiftExchangeError):
    status_kind = StatusKind.UNPROCESSABLE_ENTITY
    default_message = "Request cannot be processed"


class ServiceUnavailableError(GiftExchangeError):
    status_kind = StatusKind.SERVICE_UNAVAILABLE
    default_message = "Service unavailable"


class InternalError(GiftExchangeError):
    status_kind = StatusKind.INTERNAL_ERROR


class ConcurrentUpdateError(ConflictError):
    """The stored game changed between read and write."""

    default_message = "The game was modified concurrently. Please retry."
