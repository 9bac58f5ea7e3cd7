from typing import Callable, Optional

from fastapi import Depends, Request

from ridedesk.config.settings import Settings
from ridedesk.services.identity_service import Identity
from ridedesk.services.record_service import RESOURCES, RecordService
from ridedesk.services.teable_client import TeableClient
from ridedesk.services.tenant_service import (
    TENANT_HEADER,
    TENANT_QUERY_PARAM,
    TenantContext,
    build_tenant_context,
)
from ridedesk.utils.errors import NotFoundError, UnauthorizedError
from ridedesk.utils.logging_config import app_logger as logger, log_request_info


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_identity(request: Request) -> Optional[Identity]:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        identity = request.app.state.identity_provider.get_session_identity(
            request.headers, request.cookies
        )
    return identity


def require_api_session(request: Request) -> Optional[Identity]:
    """401 for API calls without a session, when REQUIRE_API_SESSION is on."""
    identity = get_identity(request)
    if identity is None and get_settings(request).REQUIRE_API_SESSION:
        raise UnauthorizedError()
    return identity


def request_tenant_id(request: Request) -> str:
    """
    The one tenant fallback chain for API handlers: the id the tenant middleware
    attached, then ``?tenant=``, then the default tenant.
    """
    return (
        getattr(request.state, "tenant_id", None)
        or request.headers.get(TENANT_HEADER)
        or request.query_params.get(TENANT_QUERY_PARAM)
        or get_settings(request).DEFAULT_TENANT_ID
    )


def get_tenant_context(request: Request) -> TenantContext:
    tenant_id = request_tenant_id(request)
    ctx = build_tenant_context(
        tenant_id,
        request.app.state.tenant_registry,
        request.app.state.credential_resolver,
    )
    if ctx is None:
        logger.info(f"Unknown tenant requested on {request.url.path}")
        raise NotFoundError()
    log_request_info(logger, f"{request.method} {request.url.path}", tenant_id=ctx.tenant_id)
    return ctx


def get_teable_client(
    request: Request, ctx: TenantContext = Depends(get_tenant_context)
) -> TeableClient:
    settings = get_settings(request)
    return TeableClient(
        ctx.config,
        ctx.credential,
        timeout=settings.BACKEND_TIMEOUT_SECONDS,
        default_api_url=settings.TEABLE_API_URL,
        transport=getattr(request.app.state, "teable_transport", None),
    )


def record_service_for(resource_name: str) -> Callable[..., RecordService]:
    resource = RESOURCES[resource_name]

    def dependency(
        request: Request, client: TeableClient = Depends(get_teable_client)
    ) -> RecordService:
        settings = get_settings(request)
        return RecordService(
            client,
            resource,
            page_size=settings.LIST_PAGE_SIZE,
            max_pages=settings.LIST_MAX_PAGES,
            time_zone=settings.BACKEND_TIME_ZONE,
        )

    return dependency
