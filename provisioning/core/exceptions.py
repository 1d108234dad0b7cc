import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from provisioning.config import settings

logger = logging.getLogger(__name__)


class ProvisionError(Exception):
    """Normalized error raised by every provider and vendor client.

    ``code`` is the HTTP or vendor status code when one is known, ``data`` holds
    structured context safe to show to callers and ``debug`` holds raw vendor
    payloads that are only rendered in debug mode.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "PROVISION_ERROR"

    def __init__(
        self,
        message: str,
        code: int | None = None,
        data: dict[str, Any] | None = None,
        debug: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.data: dict[str, Any] = dict(data or {})
        self.debug: dict[str, Any] = dict(debug or {})
        super().__init__(message)

    def with_data(self, data: dict[str, Any]) -> "ProvisionError":
        self.data = {**self.data, **data}
        return self

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        error: dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
            "status": self.code,
            "data": self.data,
        }
        if include_debug:
            error["debug"] = self.debug
        return error


class ProviderConnectionError(ProvisionError):
    """The vendor could not be reached (DNS, refused connection, timeout)."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "PROVIDER_CONNECTION_ERROR"


class ProviderApiError(ProvisionError):
    """The vendor answered with an HTTP error or a failed status payload."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "PROVIDER_API_ERROR"


class UnknownResponseError(ProvisionError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UNKNOWN_PROVIDER_RESPONSE"

    def __init__(
        self,
        message: str = "Unknown Provider API Error",
        code: int | None = None,
        data: dict[str, Any] | None = None,
        debug: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, data, debug)


class NotFoundError(ProvisionError):
    """A name-or-id lookup against a vendor catalog found nothing."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, message: str, search: dict[str, Any] | None = None) -> None:
        super().__init__(message, data=search)


class OperationRejectedError(ProvisionError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "OPERATION_REJECTED"


class UnsupportedOperationError(ProvisionError):
    status_code = status.HTTP_501_NOT_IMPLEMENTED
    error_code = "OPERATION_NOT_SUPPORTED"

    def __init__(self, message: str = "Operation not supported") -> None:
        super().__init__(message)


class UnknownProviderError(ProvisionError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "UNKNOWN_PROVIDER"

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider {provider} not found", data={"provider": provider})


class UnknownOperationError(ProvisionError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "UNKNOWN_OPERATION"

    def __init__(self, operation: str) -> None:
        super().__init__(f"Operation {operation} not found", data={"operation": operation})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProvisionError)
    async def provision_error_handler(request: Request, exc: ProvisionError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            exc.error_code,
            extra={
                "error_code": exc.error_code,
                "status_code": exc.status_code,
                "vendor_code": exc.code,
                "path": request.url.path,
                "detail": exc.message,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.to_dict(include_debug=settings.debug)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "loc": list(e.get("loc", [])),
                "msg": e.get("msg", ""),
                "type": e.get("type", ""),
            }
            for e in exc.errors()
        ]
        logger.info(
            "Request validation failed",
            extra={"path": request.url.path, "error_count": len(errors)},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "status": None,
                    "data": {"errors": errors},
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=True,
            extra={"path": request.url.path, "exc_type": type(exc).__name__},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "status": None,
                    "data": {},
                }
            },
        )
