import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong on our end. Please try again later."


class AppError(Exception):
    """Error with an HTTP status and a SCREAMING_SNAKE code for the client."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, code: str = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_TOKEN"


class PermissionDenied(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCESS_DENIED"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "DUPLICATE_ENTRY"


class ReportNotFound(NotFound):
    code = "REPORT_NOT_FOUND"

    def __init__(self):
        super().__init__("Report not found")


def error_body(message: str, code: str) -> dict:
    return {"message": message, "error": code}


# -------------------------------------------------------
# Exception handlers
# -------------------------------------------------------
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code))


def _field_name(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "form")]
    return ".".join(parts) or "request"


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation failed", "errors": errors},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        logger.warning("404 - Route not found: %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=404,
            content={
                "message": "The requested endpoint does not exist",
                "error": "ROUTE_NOT_FOUND",
                "path": request.url.path,
            },
        )
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        # OAuth2PasswordBearer rejects requests without a bearer header
        return JSONResponse(
            status_code=401,
            content=error_body("Access token required", "MISSING_TOKEN"),
            headers={"WWW-Authenticate": "Bearer"},
        )
    code = "METHOD_NOT_ALLOWED" if exc.status_code == 405 else "HTTP_ERROR"
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail), code))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # The driver message carries the statement parameters, so it is never echoed
    logger.warning("Duplicate key on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("Resource already exists", Conflict.code),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if config.is_development() else GENERIC_ERROR_MESSAGE
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(message, "INTERNAL_SERVER_ERROR"),
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
