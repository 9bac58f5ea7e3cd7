from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping, Optional
from urllib.parse import urlparse

from ridedesk.config.tenant_config import (
    CredentialResolver,
    TENANT_ID_PATTERN,
    TenantConfig,
    TenantRegistry,
)
from ridedesk.services.identity_service import Identity, IdentityProvider
from ridedesk.utils.logging_config import app_logger as logger

TENANT_HEADER = "x-tenant-id"
TENANT_QUERY_PARAM = "tenant"
API_PREFIX = "/api"
RESERVED_SEGMENTS = {"api", "sign-in", "sign-up", "health", "favicon.ico", "docs", "openapi.json"}


def _first_segment(path: str) -> str:
    for segment in path.split("/"):
        if segment:
            return segment
    return ""


def _is_api_path(path: str) -> bool:
    return path == API_PREFIX or path.startswith(API_PREFIX + "/")


def _tenant_from_path(path: str) -> Optional[str]:
    segment = _first_segment(path)
    if not segment or segment in RESERVED_SEGMENTS:
        return None
    if not TENANT_ID_PATTERN.match(segment):
        return None
    return segment


def tenant_from_referer(referer: Optional[str]) -> Optional[str]:
    """Best-effort tenant id from the page that issued an API call."""
    if not referer:
        return None
    try:
        path = urlparse(referer).path or ""
    except ValueError:
        return None
    return _tenant_from_path(path)


def resolve_tenant_id(
    path: str,
    query_params: Mapping[str, str],
    headers: Mapping[str, str],
    default_tenant_id: str,
) -> str:
    """
    Work out which tenant an inbound request belongs to.

    API paths: ``?tenant=`` query param, then the Referer's first path segment,
    then the default tenant. Page paths: the first path segment, then the default.
    """
    if _is_api_path(path):
        tenant_id = (query_params.get(TENANT_QUERY_PARAM) or "").strip()
        if tenant_id:
            return tenant_id
        return tenant_from_referer(headers.get("referer")) or default_tenant_id

    return _tenant_from_path(path) or default_tenant_id


@dataclass(frozen=True)
class TenantContext:
    """Per-request resolution result. Rebuilt on every request; ``config`` itself is cached."""

    tenant_id: str
    config: TenantConfig
    credential: str

    def __repr__(self) -> str:
        return f"TenantContext(tenant_id='{self.tenant_id}')"


def build_tenant_context(
    tenant_id: str, registry: TenantRegistry, credentials: CredentialResolver
) -> Optional[TenantContext]:
    config = registry.load(tenant_id)
    if config is None:
        return None
    return TenantContext(
        tenant_id=tenant_id, config=config, credential=credentials.resolve(tenant_id)
    )


class AccessDecision(str, Enum):
    ALLOW = "allow"
    NOT_FOUND = "not_found"
    NO_ACCESS = "no_access"


class MembershipErrorPolicy(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class AuthorizationGate:
    """
    Organization membership check run when a tenant's page shell is rendered.

    - No identity: NOT_FOUND, so the tenant's existence is not revealed.
    - Tenant declares no organization: ALLOW for any signed-in identity.
    - Membership lookup fails: decided by ``on_membership_error``.
    - Membership found: ALLOW, otherwise NO_ACCESS.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        on_membership_error: MembershipErrorPolicy = MembershipErrorPolicy.ALLOW,
    ):
        self.identity_provider = identity_provider
        self.on_membership_error = MembershipErrorPolicy(on_membership_error)

    async def check(self, identity: Optional[Identity], config: TenantConfig) -> AccessDecision:
        if identity is None:
            return AccessDecision.NOT_FOUND

        if not config.clerk_org_id:
            return AccessDecision.ALLOW

        try:
            org_ids = await self.identity_provider.get_organization_ids(identity.user_id)
        except Exception as e:
            logger.warning(
                f"Membership check failed for user {identity.user_id} tenant {config.id}: {e}; "
                f"policy={self.on_membership_error.value}"
            )
            if self.on_membership_error is MembershipErrorPolicy.ALLOW:
                return AccessDecision.ALLOW
            return AccessDecision.NO_ACCESS

        if config.clerk_org_id in org_ids:
            return AccessDecision.ALLOW
        logger.info(f"User {identity.user_id} is not a member of tenant {config.id}")
        return AccessDecision.NO_ACCESS


async def route_identity_to_tenant(
    identity: Identity,
    registry: TenantRegistry,
    identity_provider: IdentityProvider,
    default_tenant_id: str,
) -> str:
    """First tenant (by id) whose organization the identity belongs to, else the default."""
    try:
        org_ids: List[str] = await identity_provider.get_organization_ids(identity.user_id)
    except Exception as e:
        logger.warning(f"Could not load memberships for {identity.user_id}: {e}")
        return default_tenant_id

    for tenant_id in registry.list_tenants():
        config = registry.load(tenant_id)
        if config is not None and config.clerk_org_id and config.clerk_org_id in org_ids:
            return tenant_id
    return default_tenant_id
