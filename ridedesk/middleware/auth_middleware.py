from typing import List, Optional
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ridedesk.services.identity_service import Identity, IdentityProvider
from ridedesk.utils.logging_config import app_logger as logger

SIGN_IN_PATH = "/sign-in"


def is_public_path(path: str, public_prefixes: List[str]) -> bool:
    for prefix in public_prefixes:
        prefix = prefix.rstrip("/") or "/"
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Session check for page routes.

    Public prefixes (sign-in, sign-up, and all of ``/api``) pass through; API
    handlers resolve tenant and session themselves. Any other route without a
    valid session is redirected to the sign-in page with ``redirect_url`` set.
    """

    def __init__(self, app, identity_provider: IdentityProvider, public_prefixes: List[str]):
        super().__init__(app)
        self.identity_provider = identity_provider
        self.public_prefixes = public_prefixes

    def authenticate_request(self, request: Request) -> Optional[Identity]:
        """Authenticate request and return the session identity"""
        try:
            return self.identity_provider.get_session_identity(request.headers, request.cookies)
        except Exception as e:
            logger.error(f"Authentication error: {e}")
            return None

    async def dispatch(self, request: Request, call_next):
        identity = self.authenticate_request(request)
        request.state.identity = identity

        path = request.url.path
        if identity is None and not is_public_path(path, self.public_prefixes):
            original = path + (f"?{request.url.query}" if request.url.query else "")
            return RedirectResponse(
                url=f"{SIGN_IN_PATH}?redirect_url={quote(original, safe='')}",
                status_code=307,
            )

        return await call_next(request)
