from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx
from jose import JWTError, jwt

from ridedesk.config.settings import settings
from ridedesk.utils.logging_config import app_logger as logger

SESSION_COOKIE = "__session"


@dataclass(frozen=True)
class Identity:
    user_id: str
    claims: Dict[str, Any]


class IdentityProvider(Protocol):
    def get_session_identity(
        self, headers: Mapping[str, str], cookies: Mapping[str, str]
    ) -> Optional[Identity]: ...

    async def get_organization_ids(self, user_id: str) -> List[str]: ...


def session_token_from(headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[str]:
    """Session token from the ``__session`` cookie, else from a Bearer header."""
    token = cookies.get(SESSION_COOKIE)
    if token:
        return token
    auth_header = headers.get("authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return None


class ClerkIdentityProvider:
    """Verifies Clerk session tokens locally and reads memberships from Clerk's backend API."""

    def __init__(
        self,
        jwt_key: str = settings.CLERK_JWT_KEY,
        algorithm: str = settings.CLERK_JWT_ALGORITHM,
        secret_key: str = settings.CLERK_SECRET_KEY,
        api_url: str = settings.CLERK_API_URL,
        timeout: float = settings.BACKEND_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.jwt_key = jwt_key
        self.algorithm = algorithm
        self.secret_key = secret_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode a session token"""
        if not self.jwt_key:
            logger.warning("CLERK_JWT_KEY is not configured; rejecting session token")
            return None
        try:
            return jwt.decode(
                token,
                self.jwt_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.info(f"Session token rejected: {e}")
            return None

    def get_session_identity(
        self, headers: Mapping[str, str], cookies: Mapping[str, str]
    ) -> Optional[Identity]:
        token = session_token_from(headers, cookies)
        if not token:
            return None
        claims = self.verify_token(token)
        if not claims or not claims.get("sub"):
            return None
        return Identity(user_id=claims["sub"], claims=claims)

    async def get_organization_ids(self, user_id: str) -> List[str]:
        """Organization ids the user belongs to. Raises on any provider failure."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                f"{self.api_url}/users/{user_id}/organization_memberships",
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )
        response.raise_for_status()
        payload = response.json()
        memberships = payload.get("data", []) if isinstance(payload, dict) else payload
        org_ids = []
        for membership in memberships or []:
            organization = membership.get("organization") or {}
            org_id = organization.get("id") or membership.get("organizationId")
            if org_id:
                org_ids.append(org_id)
        return org_ids
