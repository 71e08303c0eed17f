# salon_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from salon_api.common.http import fail

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Custom API Error class."""
    code = "API_ERROR"
    status_code = 400

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


class NotFound(APIError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(APIError):
    code = "VALIDATION_ERROR"
    status_code = 422


class InvalidTransition(APIError):
    """Status change not allowed from the record's current status."""
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, action: str, current_status: str, expected_status: str | None = None):
        msg = f"Cannot {action} a bonus in '{current_status}' status"
        if expected_status:
            msg += f" (requires '{expected_status}')"
        super().__init__(msg, payload={
            "action": action,
            "current_status": current_status,
            "expected_status": expected_status,
        })
        self.action = action
        self.current_status = current_status


class ConstraintViolation(APIError):
    code = "CONSTRAINT_VIOLATION"
    status_code = 409


class DispatchFailure(APIError):
    code = "DISPATCH_FAILURE"
    status_code = 502


@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return fail(message=e.description or "HTTP error", status=e.code or 400)

@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                detail=str(e.orig) if getattr(e, "orig", None) else str(e))

@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500)
