from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ridedesk.api.error_handlers import error_response
from ridedesk.services.rate_limiter import RateLimiter, client_key_from_headers
from ridedesk.utils.errors import RateLimitedError
from ridedesk.utils.logging_config import app_logger as logger


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests over the per-client fixed-window cap with 429 and Retry-After."""

    EXEMPT_PATHS = {"/health"}

    def __init__(self, app, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client_key = client_key_from_headers(request.headers)
        result = self.limiter.check(client_key)

        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {client_key} on {request.url.path}")
            return error_response(
                RateLimitedError(retry_after=result.retry_after(self.limiter.clock()))
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response
