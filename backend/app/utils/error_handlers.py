"""
Centralized error handling and user-friendly error messages.
"""
import logging

from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""
    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict | list | None = None,
        hint: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details
        # Optional second line for the envelope's "message" field.
        self.hint = hint
        super().__init__(self.message)


class ValidationError(AppError):
    """Validation error."""
    def __init__(self, message: str = "Validation failed", details: dict | list | None = None, hint: str | None = None):
        super().__init__(message, status_code=400, details=details, hint=hint)


class NotFoundError(AppError):
    """Resource not found error."""
    def __init__(self, message: str = "Resource not found", details: dict | None = None):
        super().__init__(message, status_code=404, details=details)


class ConflictError(AppError):
    """Unique field already taken."""
    def __init__(self, message: str = "A record with this data already exists.", details: dict | None = None):
        super().__init__(message, status_code=409, details=details)


class UploadRejectedError(AppError):
    """Uploaded file has a disallowed type or extension."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class UploadLimitError(AppError):
    """Uploaded file is too large, or arrived under an unexpected field."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class DatabaseError(AppError):
    """Database error."""
    def __init__(self, message: str = "Database operation failed", details: dict | None = None):
        super().__init__(message, status_code=500, details=details)


# User-friendly error messages
ERROR_MESSAGES = {
    # Candidates
    "candidate_not_found": "Candidate not found",
    "invalid_candidate_id": "Invalid candidate ID",
    "email_exists": "A candidate with this email already exists.",
    "cv_not_found": "CV not found for this candidate",
    "cv_missing_on_disk": "CV file is no longer available on the server",

    # File uploads
    "file_too_large": "File too large. Maximum size is 10MB.",
    "unexpected_file": "Unexpected file field.",
    "file_processing_failed": "Failed to store the uploaded file. Please try again.",

    # General
    "server_error": "Something went wrong",
    "internal_error": "Internal server error",
    "database_error": "Database connection issue. Please try again later.",
    "validation_error": "Validation failed",
    "invalid_form_data": "Invalid form data format",
    "duplicate_record": "A record with this data already exists.",
}


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


def is_unique_violation(error: Exception) -> bool:
    if not isinstance(error, IntegrityError):
        return False
    error_str = str(getattr(error, "orig", None) or error).lower()
    return "unique" in error_str or "duplicate" in error_str


def handle_database_error(error: Exception, operation: str = "") -> AppError:
    """Map a database exception to an AppError with a user-friendly message."""
    logger.error("Database error during %s: %s", operation, error)

    if isinstance(error, AppError):
        return error

    if is_unique_violation(error):
        return ConflictError(get_error_message("email_exists"))

    error_str = str(error).lower()
    if "foreign key" in error_str:
        return ValidationError("Invalid reference. The related record may have been deleted.")

    if isinstance(error, IntegrityError):
        return ConflictError(get_error_message("duplicate_record"))

    if isinstance(error, OperationalError) or "connection" in error_str:
        return AppError(get_error_message("database_error"), status_code=503)

    return DatabaseError(get_error_message("server_error"))


def create_error_response(
    status_code: int,
    error: str,
    message: str | None = None,
    data: dict | list | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "success": False,
        "error": error,
    }

    if message:
        content["message"] = message
    if data is not None:
        content["data"] = data

    return JSONResponse(
        status_code=status_code,
        content=content
    )


def register_exception_handlers(app) -> None:
    """Render every error through the {success: false, error, message?, data?} envelope."""
    from fastapi import Request
    from fastapi.exceptions import RequestValidationError
    from sqlalchemy.exc import SQLAlchemyError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    from .. import config

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return create_error_response(exc.status_code, exc.message, exc.hint, exc.details)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
            for err in exc.errors()
        ]
        return create_error_response(
            400, get_error_message("validation_error"), "Please check the provided data", details
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTPException (unknown routes, wrong methods) with the same envelope."""
        return create_error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        mapped = handle_database_error(exc, f"{request.method} {request.url.path}")
        return create_error_response(mapped.status_code, mapped.message)

    @app.exception_handler(OperationalError)
    async def sqlalchemy_operational_error_handler(request: Request, exc: OperationalError):
        """Handle database operational errors."""
        logger.exception("Database OperationalError: %s", exc)
        return create_error_response(503, get_error_message("database_error"))

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
        """Handle general database errors."""
        logger.exception("Database SQLAlchemyError: %s", exc)
        return create_error_response(500, get_error_message("database_error"))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected errors globally."""
        logger.exception("Unhandled exception: %s", exc)
        message = str(exc) if config.APP_ENV == "development" else get_error_message("server_error")
        return create_error_response(500, get_error_message("internal_error"), message)
