from typing import Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

logger = structlog.get_logger()


class DisasterDeskError(Exception):
    """
    Base class for errors raised by the service layer.
    The HTTP layer is the only place these are turned into responses.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"detail": self.message}


class AuthenticationError(DisasterDeskError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password."


class RegistrationError(DisasterDeskError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Registration failed. Please try again."


class ReportValidationError(DisasterDeskError):
    """Input rejected before any remote call. `field` names the offending input."""
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    default_message = "Validation error"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_payload(self) -> dict:
        return {"detail": self.message, "field": self.field}


class NotFoundError(DisasterDeskError):
    """A report or profile is absent. `landing` is where the caller should go instead."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"

    def __init__(self, message: Optional[str] = None, landing: str = "/"):
        super().__init__(message)
        self.landing = landing

    def to_payload(self) -> dict:
        return {"detail": self.message, "redirect": self.landing}


class PermissionDeniedError(DisasterDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not enough permissions"

    def __init__(self, message: Optional[str] = None, landing: Optional[str] = None):
        super().__init__(message)
        self.landing = landing

    def to_payload(self) -> dict:
        payload = {"detail": self.message}
        if self.landing:
            payload["redirect"] = self.landing
        return payload


class StoreReadError(DisasterDeskError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The report store could not be read."


class StoreWriteError(DisasterDeskError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The report store rejected the update."


class BlobStoreError(DisasterDeskError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The image could not be stored."


async def domain_exception_handler(request: Request, exc: DisasterDeskError):
    """
    Translate service-layer errors into JSON responses.
    """
    if exc.status_code >= 500:
        logger.error("domain_error", error=exc.message, kind=type(exc).__name__, path=request.url.path)
    else:
        logger.info("domain_error", error=exc.message, kind=type(exc).__name__, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all for unhandled exceptions.
    Prevents stack trace leakage in production.
    """
    logger.error("unhandled_exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred. Please contact support."},
    )

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Standard HTTP exception handler.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Pydantic validation error handler.
    """
    logger.warning("validation_error", errors=exc.errors(), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content={"detail": "Validation error", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances that are not JSON serializable
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]
