from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ridedesk.utils.errors import DashboardError, OperationCancelled, RateLimitedError
from ridedesk.utils.logging_config import app_logger as logger, log_error_with_context


def _error_body(message: str, details=None) -> dict:
    return {"error": message, "details": details}


def error_response(exc: DashboardError) -> JSONResponse:
    """JSON ``{error, details}`` response for a dashboard error, with rate-limit headers when relevant."""
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after), "X-RateLimit-Remaining": str(exc.remaining)}
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, exc.details),
        headers=headers,
    )


async def dashboard_error_handler(request: Request, exc: DashboardError):
    if exc.status_code >= 500:
        log_error_with_context(
            logger, exc, {"path": request.url.path, "status": exc.status_code}
        )
    return error_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = None
    if errors:
        loc = [str(part) for part in errors[0].get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or None
    message = f"Invalid {field}" if field else "Invalid input"
    return JSONResponse(status_code=400, content=_error_body(message, {"field": field}))


async def operation_cancelled_handler(request: Request, exc: OperationCancelled):
    logger.info(f"Cancelled {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=499, content=_error_body("Request cancelled"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=_error_body("Internal Server Error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DashboardError, dashboard_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(OperationCancelled, operation_cancelled_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
