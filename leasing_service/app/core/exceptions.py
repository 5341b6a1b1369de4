from fastapi import HTTPException, status

from shared.helpers.json_response_helper import error_detail
from shared.utils.app_status_code import AppStatusCode


class SigningError(HTTPException):
    """Base for every user-facing signing failure.

    Subclasses carry the HTTP status and application status code so the shared
    exception handler can render them into the standard envelope.
    """

    http_status = status.HTTP_400_BAD_REQUEST
    app_status_code = AppStatusCode.OPERATION_FAILED
    default_message = "The request could not be completed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(
            status_code=self.http_status,
            detail=error_detail(self.message, self.app_status_code),
        )

    def __str__(self):
        return self.message


class NotFound(SigningError):
    http_status = status.HTTP_404_NOT_FOUND
    app_status_code = AppStatusCode.NOT_FOUND
    default_message = "Not found"


class TokenNotFound(NotFound):
    app_status_code = AppStatusCode.SIGNING_TOKEN_NOT_FOUND
    default_message = "This signing link is invalid"


class TokenExpired(SigningError):
    http_status = status.HTTP_410_GONE
    app_status_code = AppStatusCode.SIGNING_TOKEN_EXPIRED
    default_message = "This signing link has expired. Please ask the property manager to resend it"


class AlreadySigned(SigningError):
    http_status = status.HTTP_409_CONFLICT
    app_status_code = AppStatusCode.SIGNING_ALREADY_SIGNED
    default_message = "You have already signed this document"


class AlreadyCountersigned(SigningError):
    http_status = status.HTTP_409_CONFLICT
    app_status_code = AppStatusCode.SIGNING_ALREADY_COUNTERSIGNED
    default_message = "This document has already been countersigned"


class InvalidLifecycleState(SigningError):
    app_status_code = AppStatusCode.SIGNING_INVALID_STATE
    default_message = "This action is not allowed in the document's current state"


class DocumentNotSignable(InvalidLifecycleState):
    app_status_code = AppStatusCode.SIGNING_DOCUMENT_NOT_SIGNABLE
    default_message = "This document is no longer available for signing"


class NotAuthorized(SigningError):
    http_status = status.HTTP_403_FORBIDDEN
    app_status_code = AppStatusCode.UNAUTHORIZED_ACTION
    default_message = "You are not allowed to perform this action"


class LeaseValidationError(SigningError):
    app_status_code = AppStatusCode.INVALID_INPUT
    default_message = "Invalid lease data"
