from typing import Dict, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


def error_response(
    message: str,
    field_errors: Dict[str, str],
    code: int = status.HTTP_422_UNPROCESSABLE_ENTITY,
) -> HTTPException:
    """Return an HTTPException with a consistent structure and log details."""
    logger.error("%s %s", message, field_errors)
    detail = {"message": message, "field_errors": field_errors}
    return HTTPException(status_code=code, detail=detail)


# ─── Domain failures ───────────────────────────────────────────────────────────
# Services raise these; route handlers turn them into HTTP responses with
# ``to_http_exception``. ``code`` is the machine-readable reason reported in
# ``field_errors``.


class WanderNestError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    field = "request_id"
    default_message = "Request could not be processed."

    def __init__(self, message: Optional[str] = None, *, field: Optional[str] = None):
        self.message = message or self.default_message
        if field is not None:
            self.field = field
        super().__init__(self.message)


class NotFoundError(WanderNestError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(WanderNestError):
    """The stored state moved on since the caller last looked at it."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class AuthorizationError(WanderNestError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class DomainValidationError(WanderNestError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "invalid"


class RequestNotFound(NotFoundError):
    default_message = "Request not found."


class StudentNotFound(NotFoundError):
    field = "student_id"
    default_message = "Student not found."


class SelectionNotFound(NotFoundError):
    field = "student_id"
    code = "not_matched"
    default_message = "You were not matched with this request."


class RequestAlreadyAccepted(ConflictError):
    code = "already_accepted"
    default_message = "This request has already been accepted by another guide."


class RequestExpired(ConflictError):
    code = "expired"
    default_message = "This request has expired."


class RequestClosed(ConflictError):
    code = "closed"
    default_message = "This request is no longer open."


class SelectionAlreadyResolved(ConflictError):
    field = "student_id"
    code = "already_resolved"
    default_message = "You have already responded to this request."


class SelectionConflict(ConflictError):
    field = "student_id"
    code = "status_changed"
    default_message = "Request status changed. Please refresh."


class ReviewAlreadyExists(ConflictError):
    code = "review_exists"
    default_message = "A review already exists for this request."


class GuideNotApproved(AuthorizationError):
    field = "student_id"
    code = "not_approved"
    default_message = "Guide account must be approved to take requests."


class ReviewNotPermitted(AuthorizationError):
    field = "student_id"
    code = "not_assigned"
    default_message = "Reviews can only be left for the guide assigned to an accepted request."


class InvalidSelection(DomainValidationError):
    field = "student_ids"
    default_message = "One or more selected guides are not available."


def to_http_exception(exc: WanderNestError) -> HTTPException:
    """Map a domain failure onto the API's error envelope."""
    return error_response(exc.message, {exc.field: exc.code}, exc.status_code)
