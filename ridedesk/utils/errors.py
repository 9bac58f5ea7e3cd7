from typing import Any, Optional


class DashboardError(Exception):
    """Base for every error the API maps to a structured ``{error, details}`` body."""

    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class NotFoundError(DashboardError):
    status_code = 404
    default_message = "Not found"


class UnauthorizedError(DashboardError):
    status_code = 401
    default_message = "Authentication required"


class RateLimitedError(DashboardError):
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, retry_after: int, remaining: int = 0):
        super().__init__()
        self.retry_after = retry_after
        self.remaining = remaining


class InputValidationError(DashboardError):
    status_code = 400
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class UpstreamError(DashboardError):
    """The table service answered with a non-success status."""

    default_message = "Failed"

    def __init__(self, status_code: int, body: Any, message: Optional[str] = None):
        super().__init__(message, details=body)
        # Only pass through statuses that mean something to the caller
        self.status_code = status_code if 400 <= status_code < 600 else 500
        self.upstream_status = status_code


class UpstreamTimeoutError(DashboardError):
    status_code = 504
    default_message = "Upstream timeout"


class MissingCredentialError(DashboardError):
    status_code = 500
    default_message = "Missing backend credential"


class InternalError(DashboardError):
    status_code = 500


class OperationCancelled(Exception):
    """Raised inside long-running loops once their cancellation token is set."""


class ConfigurationError(DashboardError):
    """A logical table or field name has no id in the tenant's config."""

    status_code = 500
    default_message = "Tenant configuration incomplete"
